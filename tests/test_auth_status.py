"""Unit tests for status display helpers."""

from __future__ import annotations

from datetime import datetime

from voide_oauth.auth.status import TokenStatus, format_oauth_status
from voide_oauth.auth.token_store import TokenRecord


class TestTokenStatus:
    """Tests for TokenStatus.from_record."""

    def test_missing_record(self) -> None:
        """No record means not authenticated."""
        status = TokenStatus.from_record("google", None)
        assert status == TokenStatus(provider="google", authenticated=False)
        assert status.scopes == []

    def test_full_record(self) -> None:
        """Expiry is converted to local datetime and scopes are split."""
        record = TokenRecord(access_token="at", expires_at=1_700_000_000_000, scope="a b")
        status = TokenStatus.from_record("google", record)
        assert status.authenticated
        assert status.expires_at == datetime.fromtimestamp(1_700_000_000)
        assert status.scopes == ["a", "b"]

    def test_no_expiry(self) -> None:
        """Non-expiring tokens have no expiry time."""
        status = TokenStatus.from_record("github", TokenRecord(access_token="gh"))
        assert status.authenticated
        assert status.expires_at is None


class TestFormatOAuthStatus:
    """Tests for format_oauth_status."""

    def test_empty(self) -> None:
        """Only the header is rendered without providers."""
        assert format_oauth_status([]) == "## OAuth Status\n"

    def test_mixed(self) -> None:
        """Authenticated and unauthenticated providers render differently."""
        expires = datetime(2030, 1, 2, 3, 4, 5)
        text = format_oauth_status(
            [
                TokenStatus("google", True, expires, ["a", "b"]),
                TokenStatus("azure", False),
                TokenStatus("github", True, None, []),
            ]
        )
        assert text.splitlines() == [
            "## OAuth Status",
            "",
            "✓ google: Authenticated (expires 2030-01-02 03:04:05)",
            "  Scopes: a, b",
            "✗ azure: Not authenticated",
            "✓ github: Authenticated (no expiry)",
        ]

    def test_accepts_generator(self) -> None:
        """Any iterable of statuses is accepted."""
        text = format_oauth_status(TokenStatus(name, False) for name in ("a", "b"))
        assert text.endswith("✗ a: Not authenticated\n✗ b: Not authenticated")

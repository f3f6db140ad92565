"""Display helpers for provider authentication status."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable

    from .token_store import TokenRecord


@dataclass(frozen=True)
class TokenStatus:
    """What the CLI shows for one provider.

    Attributes
    ----------
    provider : str
        The provider name.
    authenticated : bool
        Whether a token record is stored.
    expires_at : datetime or None
        Local expiry time, or None for non-expiring tokens.
    scopes : list[str]
        Granted scopes.
    """

    provider: str
    authenticated: bool
    expires_at: datetime | None = None
    scopes: list[str] = field(default_factory=list)

    @classmethod
    def from_record(cls, provider: str, record: TokenRecord | None) -> TokenStatus:
        """Build the status of ``provider`` from its stored record."""
        if record is None:
            return cls(provider=provider, authenticated=False)
        expires_at = (
            datetime.fromtimestamp(record.expires_at / 1000)
            if record.expires_at is not None
            else None
        )
        return cls(
            provider=provider,
            authenticated=True,
            expires_at=expires_at,
            scopes=record.scopes,
        )


def format_oauth_status(statuses: Iterable[TokenStatus]) -> str:
    """Render provider statuses as the ``## OAuth Status`` block.

    Parameters
    ----------
    statuses : iterable of TokenStatus
        One entry per provider, in display order.

    Returns
    -------
    str
        Multi-line status text.
    """
    lines = ["## OAuth Status", ""]

    for status in statuses:
        if not status.authenticated:
            lines.append(f"✗ {status.provider}: Not authenticated")
            continue
        expires = (
            f"expires {status.expires_at:%Y-%m-%d %H:%M:%S}"
            if status.expires_at is not None
            else "no expiry"
        )
        lines.append(f"✓ {status.provider}: Authenticated ({expires})")
        if status.scopes:
            lines.append(f"  Scopes: {', '.join(status.scopes)}")

    return "\n".join(lines)

"""File-backed OAuth2 token storage.

Keeps one TokenRecord per provider in memory and mirrors the whole
map to a single JSON file. Every mutation is written to disk before
it returns.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..exceptions import StorageError


logger = logging.getLogger("voide_oauth.auth")


@dataclass
class TokenRecord:
    """Tokens held for one provider.

    Attributes
    ----------
    access_token : str
        The access token for API requests.
    refresh_token : str or None
        Optional refresh token for obtaining new access tokens.
    token_type : str
        Token type, typically "Bearer".
    expires_at : int or None
        Expiry as Unix epoch milliseconds, or None if non-expiring.
    scope : str or None
        Space-separated list of granted scopes.
    """

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"  # noqa: S105
    expires_at: int | None = None
    scope: str | None = None

    def is_expired(self, now_ms: int, buffer_ms: int = 0) -> bool:
        """Check whether the access token is expired (or within ``buffer_ms`` of it)."""
        if self.expires_at is None:
            return False
        return self.expires_at <= now_ms + buffer_ms

    @property
    def scopes(self) -> list[str]:
        """Granted scopes as a list."""
        return self.scope.split() if self.scope else []

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase form, omitting unset fields."""
        data: dict[str, Any] = {"accessToken": self.access_token}
        if self.refresh_token is not None:
            data["refreshToken"] = self.refresh_token
        data["tokenType"] = self.token_type
        if self.expires_at is not None:
            data["expiresAt"] = self.expires_at
        if self.scope is not None:
            data["scope"] = self.scope
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenRecord:
        """Deserialize from the persisted camelCase form.

        Raises
        ------
        KeyError, TypeError, ValueError, OverflowError
            If the entry is malformed.
        """
        access_token = data["accessToken"]
        if not isinstance(access_token, str):
            msg = "accessToken must be a string"
            raise TypeError(msg)
        for key in ("refreshToken", "tokenType", "scope"):
            if data.get(key) is not None and not isinstance(data[key], str):
                msg = f"{key} must be a string"
                raise TypeError(msg)
        expires_at = data.get("expiresAt")
        if isinstance(expires_at, bool):
            msg = "expiresAt must be a number"
            raise TypeError(msg)
        return cls(
            access_token=access_token,
            refresh_token=data.get("refreshToken"),
            token_type=data.get("tokenType") or "Bearer",
            expires_at=int(expires_at) if expires_at is not None else None,
            scope=data.get("scope"),
        )


class TokenStore:
    """Provider -> TokenRecord map mirrored to one JSON file.

    Writers are serialized with an asyncio.Lock. Reads hit the
    in-memory copy only.

    Parameters
    ----------
    path : str or Path
        The JSON file holding all provider tokens.
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize an empty store bound to ``path``."""
        self.path = Path(path).expanduser()
        self._records: dict[str, TokenRecord] = {}
        self._lock = asyncio.Lock()
        self.loaded = False

    async def load(self) -> None:
        """Replace the in-memory map with the file contents.

        A missing file yields an empty store. An unreadable or corrupt
        file also yields an empty store; the StorageError is logged and
        never raised so a later login can overwrite the file. A single
        malformed provider entry is skipped with a warning.
        """
        async with self._lock:
            try:
                self._records = self._read_file()
            except StorageError as exc:
                logger.warning("Ignoring unusable token file: %s", exc)
                self._records = {}
            self.loaded = True

    def _read_file(self) -> dict[str, TokenRecord]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            msg = f"Cannot read token file: {exc}"
            raise StorageError(msg, path=str(self.path)) from exc

        try:
            raw = json.loads(content)
        except ValueError as exc:
            msg = f"Corrupt token file: {exc}"
            raise StorageError(msg, path=str(self.path)) from exc
        if not isinstance(raw, dict):
            msg = "Corrupt token file: expected a JSON object"
            raise StorageError(msg, path=str(self.path))

        # A malformed entry costs only its own provider
        records: dict[str, TokenRecord] = {}
        for provider, entry in raw.items():
            try:
                records[str(provider)] = TokenRecord.from_dict(entry)
            except (ValueError, TypeError, KeyError, AttributeError, OverflowError) as exc:
                logger.warning("Ignoring malformed token entry for %s: %s", provider, exc)
        return records

    async def save(self) -> None:
        """Atomically write the full in-memory map to the file.

        Raises
        ------
        StorageError
            If the file cannot be written.
        """
        async with self._lock:
            self._write_file(self._records)

    def _write_file(self, records: dict[str, TokenRecord]) -> None:
        content = json.dumps(
            {provider: record.to_dict() for provider, record in records.items()},
            indent=2,
        )
        tmp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=".tmp_", suffix=".json", text=True
            )
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                f.write(content)
            # chmod before the rename so the tokens are never world-readable
            with contextlib.suppress(OSError, NotImplementedError):
                os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as exc:
            msg = f"Cannot write token file: {exc}"
            raise StorageError(msg, path=str(self.path)) from exc
        finally:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)

    async def set(self, provider: str, record: TokenRecord) -> None:
        """Store ``record`` for ``provider`` and persist.

        Raises
        ------
        StorageError
            If the file cannot be written; the in-memory map is left
            unchanged in that case.
        """
        async with self._lock:
            updated = {**self._records, provider: record}
            self._write_file(updated)
            self._records = updated

    async def set_if_present(self, provider: str, record: TokenRecord) -> bool:
        """Replace ``provider``'s record only if one is still stored.

        The presence check and the write happen under the writer lock,
        so a concurrent delete() either lands first and wins or lands
        after and removes the new record.

        Returns
        -------
        bool
            False if ``provider`` had no record; nothing is written then.

        Raises
        ------
        StorageError
            If the file cannot be written.
        """
        async with self._lock:
            if provider not in self._records:
                return False
            updated = {**self._records, provider: record}
            self._write_file(updated)
            self._records = updated
            return True

    async def delete(self, provider: str) -> None:
        """Remove ``provider``'s record and persist. Absent providers are a no-op."""
        async with self._lock:
            if provider not in self._records:
                return
            updated = {k: v for k, v in self._records.items() if k != provider}
            self._write_file(updated)
            self._records = updated

    def get(self, provider: str) -> TokenRecord | None:
        """Return the record for ``provider``, or None."""
        return self._records.get(provider)

    def keys(self) -> list[str]:
        """Return all providers with a stored record."""
        return list(self._records)

    def __contains__(self, provider: object) -> bool:
        return provider in self._records

    def __len__(self) -> int:
        return len(self._records)

"""Token endpoint client for the authorization-code and refresh grants."""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import math
import time

from typing import TYPE_CHECKING, Any

import httpx

from ..exceptions import NetworkError
from ..log import redact_sensitive_data
from .token_store import TokenRecord


if TYPE_CHECKING:
    from collections.abc import Callable

    from .providers import ProviderConfig


logger = logging.getLogger("voide_oauth.auth")

DEFAULT_HTTP_TIMEOUT = 30.0

# Provider error bodies are echoed into exceptions; keep them bounded
_MAX_ERROR_BODY = 2000

# Lifetimes beyond this are treated as malformed; expiry must stay a valid timestamp
_MAX_EXPIRES_IN = 10 * 365 * 24 * 3600

# Optional response fields that must be strings when present
_OPTIONAL_STR_FIELDS = ("refresh_token", "token_type", "scope")


def _parse_expires_in(value: Any) -> float | None:
    """Return ``expires_in`` as seconds, or None when it is not a usable lifetime."""
    if isinstance(value, bool):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(seconds) or not 0 <= seconds <= _MAX_EXPIRES_IN:
        return None
    return seconds


class TokenExchanger:
    """Performs token endpoint grants against a provider.

    Parameters
    ----------
    timeout : float
        Network timeout in seconds for each token request (default 30).
    clock : callable, optional
        Returns the current Unix time in seconds (default ``time.time``).
    client : httpx.AsyncClient, optional
        HTTP client to use instead of an internally created one.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        clock: Callable[[], float] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the exchanger."""
        self.timeout = timeout
        self._clock = clock or time.time
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def exchange_code(
        self,
        config: ProviderConfig,
        *,
        code: str,
        redirect_uri: str,
        client_id: str,
        client_secret: str | None = None,
        code_verifier: str | None = None,
    ) -> TokenRecord:
        """Exchange an authorization code for tokens.

        Parameters
        ----------
        config : ProviderConfig
            The provider whose token endpoint is called.
        code : str
            The authorization code from the redirect.
        redirect_uri : str
            The redirect URI used in the authorization request.
        client_id : str
            The OAuth2 client ID.
        client_secret : str, optional
            The client secret, for confidential clients.
        code_verifier : str, optional
            The PKCE code verifier if PKCE was used.

        Returns
        -------
        TokenRecord
            The new tokens.

        Raises
        ------
        NetworkError
            If the request fails or the provider rejects the code.
        """
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
        }
        if client_secret:
            data["client_secret"] = client_secret
        if code_verifier:
            data["code_verifier"] = code_verifier

        raw = await self._post(config, data, action="Token exchange")
        return self._to_record(raw)

    async def refresh(
        self,
        config: ProviderConfig,
        *,
        refresh_token: str,
        client_id: str,
        client_secret: str | None = None,
        previous: TokenRecord | None = None,
    ) -> TokenRecord:
        """Obtain a new access token with a refresh token.

        Parameters
        ----------
        config : ProviderConfig
            The provider whose token endpoint is called.
        refresh_token : str
            The refresh token.
        client_id : str
            The OAuth2 client ID.
        client_secret : str, optional
            The client secret, for confidential clients.
        previous : TokenRecord, optional
            The record being replaced; its scope is kept when the
            response omits one.

        Returns
        -------
        TokenRecord
            The new tokens. ``refresh_token`` falls back to the one
            presented when the provider does not rotate it.

        Raises
        ------
        NetworkError
            If the request fails or the provider rejects the refresh token.
        """
        data: dict[str, str] = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
        }
        if client_secret:
            data["client_secret"] = client_secret

        raw = await self._post(config, data, action="Token refresh")
        record = self._to_record(raw)
        if not record.refresh_token:
            record.refresh_token = refresh_token
        if record.scope is None and previous is not None:
            record.scope = previous.scope
        return record

    async def _post(self, config: ProviderConfig, data: dict[str, str], action: str) -> dict[str, Any]:
        try:
            client = await self._get_client()
            resp = await client.post(
                config.token_url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            msg = f"{action} request failed: {exc}"
            raise NetworkError(msg, provider=config.name) from exc

        body = resp.text[:_MAX_ERROR_BODY]
        if not resp.is_success:
            msg = f"{action} failed: {resp.status_code} {body}".rstrip()
            raise NetworkError(msg, status_code=resp.status_code, body=body, provider=config.name)

        try:
            raw = resp.json()
        except ValueError as exc:
            msg = f"{action} returned a non-JSON response"
            raise NetworkError(
                msg, status_code=resp.status_code, body=body, provider=config.name
            ) from exc

        if not isinstance(raw, dict):
            msg = f"{action} returned an unexpected response"
            raise NetworkError(msg, status_code=resp.status_code, body=body, provider=config.name)

        logger.debug("%s response from %s: %s", action, config.name, redact_sensitive_data(raw))

        # GitHub reports grant errors in a 200 body
        if "error" in raw:
            msg = f"{action} failed: {raw.get('error_description') or raw['error']}"
            raise NetworkError(msg, status_code=resp.status_code, body=body, provider=config.name)
        if not raw.get("access_token"):
            msg = f"{action} response has no access_token"
            raise NetworkError(msg, status_code=resp.status_code, body=body, provider=config.name)

        # The body holds live tokens from here on, so it is not attached
        if not isinstance(raw["access_token"], str):
            msg = f"{action} returned a non-string access_token"
            raise NetworkError(msg, status_code=resp.status_code, provider=config.name)
        for field in _OPTIONAL_STR_FIELDS:
            if raw.get(field) is not None and not isinstance(raw[field], str):
                msg = f"{action} returned a malformed {field}"
                raise NetworkError(msg, status_code=resp.status_code, provider=config.name)
        if raw.get("expires_in") is not None and _parse_expires_in(raw["expires_in"]) is None:
            msg = f"{action} returned a malformed expires_in: {raw['expires_in']!r}"
            raise NetworkError(msg, status_code=resp.status_code, provider=config.name)
        return raw

    def _to_record(self, raw: dict[str, Any]) -> TokenRecord:
        expires_at: int | None = None
        seconds = _parse_expires_in(raw.get("expires_in"))
        if seconds is not None:
            expires_at = int(self._clock() * 1000) + int(seconds * 1000)

        return TokenRecord(
            access_token=raw["access_token"],
            refresh_token=raw.get("refresh_token") or None,
            token_type=raw.get("token_type") or "Bearer",
            expires_at=expires_at,
            scope=raw.get("scope") or None,
        )

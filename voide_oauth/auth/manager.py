"""OAuth2 token-lifecycle manager.

Provides OAuthManager, which builds authorization URLs, redeems
authorization codes, persists tokens, resolves valid access tokens
(refreshing them on demand) and revokes them. The interactive
``authorize`` flow drives the loopback callback listener.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import logging
import threading
import time
import webbrowser

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from ..config import OAuthSettings, get_settings
from ..exceptions import (
    AuthenticationError,
    AuthFlowTimeout,
    ConfigError,
    ListenerError,
    StateError,
    VoideOAuthError,
)
from ..log import get_logger
from .callback_server import OAuthCallbackServer
from .exchanger import TokenExchanger
from .pending import PendingFlowTable
from .pkce import PKCEChallenge
from .providers import ProviderRegistry
from .status import TokenStatus, format_oauth_status
from .token_store import TokenRecord, TokenStore


if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from .providers import ProviderConfig


logger = logging.getLogger("voide_oauth.auth")


@dataclass(frozen=True)
class AuthorizationRequest:
    """An authorization URL ready to be opened in a browser.

    Attributes
    ----------
    url : str
        The full authorization URL.
    state : str
        The state token bound to this request.
    code_verifier : str or None
        The PKCE verifier, if PKCE is used.
    """

    url: str
    state: str
    code_verifier: str | None = None


class OAuthManager:
    """Owns pending flows, stored tokens and the callback listener.

    Parameters
    ----------
    token_path : str or Path, optional
        Token file (defaults to ``settings.token_file``).
    registry : ProviderRegistry, optional
        Provider table (defaults to the built-in providers).
    settings : OAuthSettings, optional
        Configuration (defaults to ``get_settings().oauth``).
    clock : callable, optional
        Returns the current Unix time in seconds (default ``time.time``).
    exchanger : TokenExchanger, optional
        Token endpoint client.
    callback_server : OAuthCallbackServer, optional
        Listener used by ``authorize``.
    """

    def __init__(
        self,
        token_path: str | Path | None = None,
        *,
        registry: ProviderRegistry | None = None,
        settings: OAuthSettings | None = None,
        clock: Callable[[], float] | None = None,
        exchanger: TokenExchanger | None = None,
        callback_server: OAuthCallbackServer | None = None,
    ) -> None:
        """Initialize the manager."""
        get_logger()
        self.settings = settings or get_settings().oauth
        self.registry = registry or ProviderRegistry()
        self._clock = clock or time.time
        self.store = TokenStore(token_path or self.settings.token_file)
        self._pending = PendingFlowTable(ttl=self.settings.flow_ttl_seconds, clock=self._clock)
        self._exchanger = exchanger or TokenExchanger(
            timeout=self.settings.http_timeout_seconds,
            clock=self._clock,
        )
        self._listener = callback_server or OAuthCallbackServer(
            host=self.settings.callback_host,
            port=self.settings.callback_port,
        )
        self._flow_guard = threading.Lock()
        self._flow_active = False
        self._refreshing: dict[str, asyncio.Task[TokenRecord]] = {}
        self._clients: dict[str, tuple[str, str | None]] = {}

    async def __aenter__(self) -> OAuthManager:
        await self.load()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── Credentials ─────────────────────────────────────────────────

    def _resolve_client_id(self, config: ProviderConfig, client_id: str | None) -> str:
        remembered = self._clients.get(config.name)
        resolved = (
            client_id
            or (remembered[0] if remembered else None)
            or self.settings.client_ids.get(config.name)
            or config.client_id
        )
        if not resolved:
            msg = f"No client ID configured for {config.name}"
            raise ConfigError(msg, provider=config.name)
        return resolved

    def _resolve_client_secret(self, provider: str, client_secret: str | None) -> str | None:
        remembered = self._clients.get(provider)
        return (
            client_secret
            or (remembered[1] if remembered else None)
            or self.settings.client_secrets.get(provider)
        )

    @property
    def default_redirect_uri(self) -> str:
        """Redirect URI of the callback listener."""
        if self._listener.is_running:
            return self._listener.redirect_uri
        return f"http://{self.settings.callback_host}:{self.settings.callback_port}/callback"

    # ── Flow initiation ─────────────────────────────────────────────

    def get_authorization_url(
        self,
        provider: str,
        *,
        client_id: str | None = None,
        redirect_uri: str | None = None,
        use_pkce: bool | None = None,
        scopes: Sequence[str] | None = None,
    ) -> AuthorizationRequest:
        """Build an authorization URL and register its pending flow.

        No network request is made.

        Parameters
        ----------
        provider : str
            The provider name.
        client_id : str, optional
            Client ID (defaults to the configured or built-in one).
        redirect_uri : str, optional
            Redirect URI (defaults to the callback listener's URL).
        use_pkce : bool, optional
            Override the provider's PKCE default.
        scopes : sequence of str, optional
            Override the provider's default scopes.

        Returns
        -------
        AuthorizationRequest
            The URL, its state, and the PKCE verifier if any.

        Raises
        ------
        ConfigError
            If the provider is unknown or has no client ID.
        """
        config = self.registry.get(provider)
        resolved_client_id = self._resolve_client_id(config, client_id)
        redirect = redirect_uri or self.default_redirect_uri

        pkce_enabled = config.use_pkce if use_pkce is None else use_pkce
        pkce = PKCEChallenge.generate() if pkce_enabled else None

        flow = self._pending.add(
            provider,
            redirect_uri=redirect,
            client_id=resolved_client_id,
            code_verifier=pkce.verifier if pkce else None,
        )

        params: dict[str, str] = {
            "response_type": "code",
            "client_id": resolved_client_id,
            "redirect_uri": redirect,
            "scope": " ".join(config.scopes if scopes is None else scopes),
            "state": flow.state,
        }
        if pkce:
            params["code_challenge"] = pkce.challenge
            params["code_challenge_method"] = pkce.method
        for key, value in config.extra_authorize_params.items():
            params.setdefault(key, value)

        separator = "&" if "?" in config.authorization_url else "?"
        url = f"{config.authorization_url}{separator}{urlencode(params)}"
        logger.debug("Issued authorization request for %s (pkce=%s)", provider, pkce_enabled)
        return AuthorizationRequest(
            url=url,
            state=flow.state,
            code_verifier=pkce.verifier if pkce else None,
        )

    def sweep_expired_flows(self) -> int:
        """Drop pending flows whose TTL has elapsed.

        Returns
        -------
        int
            Number of flows removed.
        """
        return self._pending.sweep()

    # ── Code exchange ───────────────────────────────────────────────

    async def exchange_code(
        self,
        provider: str,
        code: str,
        state: str,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
    ) -> TokenRecord:
        """Redeem an authorization code and persist the tokens.

        The state is consumed whether or not the exchange succeeds.

        Parameters
        ----------
        provider : str
            The provider the code was issued by.
        code : str
            The authorization code.
        state : str
            The state returned with the code.
        client_id : str, optional
            Client ID (defaults to the one used for the authorization URL).
        client_secret : str, optional
            Client secret for confidential clients.
        redirect_uri : str, optional
            Redirect URI (defaults to the one used for the authorization URL).

        Returns
        -------
        TokenRecord
            The stored tokens.

        Raises
        ------
        StateError
            If the state is unknown, expired, or bound to another provider.
        NetworkError
            If the token endpoint rejects the code or is unreachable.
        StorageError
            If the tokens cannot be persisted.
        """
        flow = self._pending.pop(state)
        if flow is None or flow.provider != provider:
            raise StateError(provider=provider)

        config = self.registry.get(provider)
        resolved_client_id = client_id or flow.client_id
        resolved_secret = self._resolve_client_secret(provider, client_secret)

        await self._ensure_loaded()
        record = await self._exchanger.exchange_code(
            config,
            code=code,
            redirect_uri=redirect_uri or flow.redirect_uri,
            client_id=resolved_client_id,
            client_secret=resolved_secret,
            code_verifier=flow.code_verifier,
        )
        await self.store.set(provider, record)
        self._clients[provider] = (resolved_client_id, resolved_secret)
        logger.info("Stored OAuth tokens for %s", provider)
        return record

    # ── Interactive flow ────────────────────────────────────────────

    async def authorize(
        self,
        provider: str,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        use_pkce: bool | None = None,
        scopes: Sequence[str] | None = None,
        open_browser: Callable[[str], Any] | None = None,
        timeout: float | None = None,
    ) -> TokenRecord:
        """Run the full browser login for ``provider``.

        Starts the callback listener, opens the authorization URL,
        waits for the redirect and redeems the code. Redirects carrying
        any other state are refused with 400 and the wait continues.
        The listener is stopped and the pending flow dropped on every
        exit path.

        Parameters
        ----------
        provider : str
            The provider name.
        client_id : str, optional
            Client ID (defaults to the configured or built-in one).
        client_secret : str, optional
            Client secret for confidential clients.
        use_pkce : bool, optional
            Override the provider's PKCE default.
        scopes : sequence of str, optional
            Override the provider's default scopes.
        open_browser : callable, optional
            Called with the authorization URL (default ``webbrowser.open``).
        timeout : float, optional
            Seconds to wait for the redirect
            (default ``settings.callback_timeout_seconds``).

        Returns
        -------
        TokenRecord
            The stored tokens.

        Raises
        ------
        ListenerError
            If another flow is in progress or the port is unavailable.
        AuthFlowTimeout
            If the redirect does not arrive in time.
        AuthenticationError
            If the provider reports an error in the redirect.
        """
        self.registry.get(provider)
        with self._flow_guard:
            if self._flow_active:
                msg = "An authorization flow is already in progress"
                raise ListenerError(
                    msg, host=self.settings.callback_host, port=self.settings.callback_port
                )
            self._flow_active = True

        request: AuthorizationRequest | None = None
        try:
            redirect_uri = self._listener.start()
            request = self.get_authorization_url(
                provider,
                client_id=client_id,
                redirect_uri=redirect_uri,
                use_pkce=use_pkce,
                scopes=scopes,
            )
            # Redirects for any other state are refused and the wait goes on
            self._listener.expect_state(request.state)

            logger.info("Open this URL to authenticate with %s: %s", provider, request.url)
            opener = open_browser or webbrowser.open
            try:
                opener(request.url)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not open a browser, open the URL manually: %s", exc)

            wait_timeout = timeout if timeout is not None else self.settings.callback_timeout_seconds
            result = await self._listener.wait(timeout=wait_timeout)

            if result is None:
                msg = f"Authentication timed out after {wait_timeout}s"
                raise AuthFlowTimeout(msg, timeout=wait_timeout, provider=provider)

            if result.failed:
                raise AuthenticationError(result.error_message, provider=provider, error=result.error)

            return await self.exchange_code(
                provider,
                result.code or "",
                result.state or "",
                client_id=client_id,
                client_secret=client_secret,
            )
        finally:
            # Shutdown blocks until the serving thread notices; keep the loop free
            try:
                await asyncio.to_thread(self._listener.stop)
            finally:
                if request is not None:
                    self._pending.discard(request.state)
                with self._flow_guard:
                    self._flow_active = False

    # ── Token resolution ────────────────────────────────────────────

    async def load(self) -> None:
        """(Re)load tokens from the token file."""
        await self.store.load()

    async def _ensure_loaded(self) -> None:
        if not self.store.loaded:
            await self.store.load()

    async def get_access_token(
        self,
        provider: str,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
    ) -> str | None:
        """Return a valid access token, refreshing it if needed.

        Never raises for a routine check: a missing record, an expired
        token without a refresh token, and a failed refresh all return
        None.

        Parameters
        ----------
        provider : str
            The provider name.
        client_id : str, optional
            Client ID for a refresh (defaults to the configured one).
        client_secret : str, optional
            Client secret for a refresh.

        Returns
        -------
        str or None
            The access token, or None if the provider is not authenticated.
        """
        await self._ensure_loaded()
        record = self.store.get(provider)
        if record is None:
            return None

        now_ms = int(self._clock() * 1000)
        buffer_ms = int(self.settings.refresh_buffer_seconds * 1000)
        if not record.is_expired(now_ms, buffer_ms):
            return record.access_token

        # Still usable while inside the refresh window
        fallback = None if record.is_expired(now_ms) else record.access_token
        if not record.refresh_token:
            return fallback

        try:
            refreshed = await self._refresh_single_flight(provider, client_id, client_secret)
        except VoideOAuthError as exc:
            logger.warning("Token refresh for %s failed: %s", provider, exc)
            return fallback
        return refreshed.access_token

    async def refresh_token(
        self,
        provider: str,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
    ) -> TokenRecord:
        """Refresh ``provider``'s tokens now.

        Raises
        ------
        ConfigError
            If the provider is unknown or has no client ID.
        AuthenticationError
            If no refresh token is stored.
        NetworkError
            If the token endpoint rejects the refresh.
        """
        self.registry.get(provider)
        await self._ensure_loaded()
        return await self._refresh_single_flight(provider, client_id, client_secret)

    async def _refresh_single_flight(
        self,
        provider: str,
        client_id: str | None,
        client_secret: str | None,
    ) -> TokenRecord:
        task = self._refreshing.get(provider)
        if task is None:
            task = asyncio.ensure_future(self._do_refresh(provider, client_id, client_secret))
            self._refreshing[provider] = task
            task.add_done_callback(lambda t, p=provider: self._forget_refresh(p, t))
        else:
            logger.debug("Joining in-flight token refresh for %s", provider)
        return await asyncio.shield(task)

    def _forget_refresh(self, provider: str, task: asyncio.Task[TokenRecord]) -> None:
        if self._refreshing.get(provider) is task:
            del self._refreshing[provider]
        if not task.cancelled():
            # Mark the exception retrieved when every waiter was cancelled
            task.exception()

    async def _do_refresh(
        self,
        provider: str,
        client_id: str | None,
        client_secret: str | None,
    ) -> TokenRecord:
        config = self.registry.get(provider)
        record = self.store.get(provider)
        if record is None or not record.refresh_token:
            msg = "No refresh token available"
            raise AuthenticationError(msg, provider=provider)

        new_record = await self._exchanger.refresh(
            config,
            refresh_token=record.refresh_token,
            client_id=self._resolve_client_id(config, client_id),
            client_secret=self._resolve_client_secret(provider, client_secret),
            previous=record,
        )
        if not await self.store.set_if_present(provider, new_record):
            msg = "Tokens were revoked during refresh"
            raise AuthenticationError(msg, provider=provider)
        logger.info("Refreshed OAuth tokens for %s", provider)
        return new_record

    async def is_authenticated(self, provider: str) -> bool:
        """Check whether a valid access token can be obtained for ``provider``."""
        return await self.get_access_token(provider) is not None

    def get_token_info(self, provider: str) -> TokenRecord | None:
        """Return the stored record for display, without refreshing.

        Reads the in-memory store; call ``load`` first in a fresh process.
        """
        return self.store.get(provider)

    def token_status(self, provider: str) -> TokenStatus:
        """Summarize ``provider``'s stored tokens for display."""
        return TokenStatus.from_record(provider, self.get_token_info(provider))

    async def status_report(self) -> str:
        """Render the status of every registered provider."""
        await self._ensure_loaded()
        return format_oauth_status(self.token_status(name) for name in self.registry.names())

    # ── Revocation ──────────────────────────────────────────────────

    async def revoke_token(self, provider: str) -> None:
        """Forget ``provider``'s tokens and persist. Idempotent."""
        await self._ensure_loaded()
        await self.store.delete(provider)
        self._clients.pop(provider, None)
        logger.info("Revoked OAuth tokens for %s", provider)

    async def close(self) -> None:
        """Stop the listener and close the HTTP client."""
        await asyncio.to_thread(self._listener.stop)
        await self._exchanger.close()


_manager_instance: OAuthManager | None = None
_manager_lock = threading.Lock()


def get_oauth_manager() -> OAuthManager:
    """Return the process-wide OAuthManager.

    Built from ``get_settings()`` on first use. Call
    ``reset_oauth_manager()`` to drop it (e.g. in tests).
    """
    global _manager_instance  # noqa: PLW0603

    with _manager_lock:
        if _manager_instance is None:
            _manager_instance = OAuthManager(settings=get_settings().oauth)
        return _manager_instance


def reset_oauth_manager() -> None:
    """Drop the process-wide OAuthManager."""
    global _manager_instance  # noqa: PLW0603

    with _manager_lock:
        _manager_instance = None

"""Pytest configuration and fixtures."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import asyncio
import os

from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl

import httpx
import pytest

from voide_oauth import config
from voide_oauth.auth.exchanger import TokenExchanger
from voide_oauth.auth.manager import OAuthManager, reset_oauth_manager
from voide_oauth.config import OAuthSettings, clear_settings_cache


if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path


# Fixed "now" for deterministic expiry arithmetic (2023-11-14T22:13:20Z)
BASE_TIME = 1_700_000_000.0


class FakeClock:
    """Controllable replacement for ``time.time``."""

    def __init__(self, now: float = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    @property
    def now_ms(self) -> int:
        return int(self.now * 1000)


class TokenEndpoint:
    """Scripted token endpoint served through ``httpx.MockTransport``.

    Responses are queued with :meth:`respond` and consumed in order;
    once the queue is empty the last consumed one is repeated. Bytes are
    served verbatim as JSON, strings as text. Every request body is
    recorded as a dict in :attr:`requests`.
    """

    def __init__(self) -> None:
        self.requests: list[dict[str, str]] = []
        self.urls: list[str] = []
        self._responses: list[tuple[int, Any]] = []
        self._last: tuple[int, Any] | None = None
        self.delay = 0.0

    def respond(self, body: Any, status: int = 200) -> TokenEndpoint:
        self._responses.append((status, body))
        return self

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        self.requests.append(dict(parse_qsl(request.content.decode())))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._responses:
            self._last = self._responses.pop(0)
        assert self._last is not None, "no token response scripted"
        status, body = self._last
        if isinstance(body, bytes):
            return httpx.Response(status, content=body, headers={"Content-Type": "application/json"})
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def exchanger(self, clock: FakeClock | None = None) -> TokenExchanger:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))
        return TokenExchanger(clock=clock, client=client)


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep user config files and VOIDE_* variables out of every test."""
    for name in list(os.environ):
        if name.startswith("VOIDE"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "VOIDE_DIR", tmp_path / "home" / ".voide")
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    reset_oauth_manager()
    yield
    clear_settings_cache()
    reset_oauth_manager()


@pytest.fixture()
def clock() -> FakeClock:
    """A clock frozen at BASE_TIME."""
    return FakeClock()


@pytest.fixture()
def token_file(tmp_path: Path) -> Path:
    """Location of the token file for the test."""
    return tmp_path / "voide" / "oauth-tokens.json"


@pytest.fixture()
def oauth_settings(token_file: Path) -> OAuthSettings:
    """Settings with client IDs for every built-in provider and an ephemeral port."""
    return OAuthSettings(
        token_file=token_file,
        callback_port=0,
        client_ids={
            "google": "google-client",
            "azure": "azure-client",
            "github": "github-client",
            "anthropic": "anthropic-client",
        },
        client_secrets={"github": "github-secret"},
    )


@pytest.fixture()
def endpoint() -> TokenEndpoint:
    """A token endpoint with no scripted responses."""
    return TokenEndpoint()


@pytest.fixture()
def manager(oauth_settings: OAuthSettings, clock: FakeClock, endpoint: TokenEndpoint) -> OAuthManager:
    """An OAuthManager wired to the fake clock and token endpoint."""
    return OAuthManager(
        settings=oauth_settings,
        clock=clock,
        exchanger=endpoint.exchanger(clock),
    )

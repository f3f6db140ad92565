"""Ephemeral loopback HTTP server for OAuth2 redirect capture.

Bound only while an interactive flow is outstanding. Serves a
success/error HTML page and extracts the authorization code, state
and provider error from the redirect's query parameters.

Uses only stdlib (http.server, threading, urllib.parse).
"""

# pylint: disable=logging-too-many-args

# pylint: disable=C0103,W0212

from __future__ import annotations

import asyncio
import html
import logging
import threading
import time

from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from ..exceptions import ListenerError


logger = logging.getLogger("voide_oauth.auth")

DEFAULT_CALLBACK_PORT = 9876

_PAGE_STYLE = """
  html { font: 16px/1.5 system-ui, sans-serif; color: #222; background: #fafafa; }
  main { max-width: 32rem; margin: 15vh auto; padding: 1.5rem 2rem;
         border: 1px solid #ddd; border-radius: 8px; background: #fff; }
  h1 { font-size: 1.25rem; margin: 0 0 .75rem; }
  h1.failed { color: #b00020; }
  p { margin: .25rem 0; color: #555; }
"""

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>{title}</title>
<style>{style}</style></head>
<body><main>
  {body}
</main></body></html>"""


def _render_page(title: str, body: str) -> str:
    return _PAGE_TEMPLATE.format(title=title, style=_PAGE_STYLE, body=body)


_SUCCESS_HTML = _render_page(
    "Authentication Successful",
    "<h1>&#x2705; Authentication Successful</h1>\n"
    "  <p>You can close this window and return to the CLI.</p>",
)

_WAITING_HTML = _render_page(
    "Waiting for Authentication",
    "<h1>Waiting for authentication&hellip;</h1>\n"
    "  <p>Please complete the login in the browser window.</p>",
)


def _error_html(message: str) -> str:
    safe_msg = html.escape(message, quote=True)
    return _render_page(
        "Authentication Failed",
        '<h1 class="failed">&#x274C; Authentication Failed</h1>\n'
        f"  <p>Error: {safe_msg}</p>\n"
        "  <p>You can close this window.</p>",
    )


@dataclass(frozen=True)
class CallbackResult:
    """Query parameters captured from the provider redirect.

    Attributes
    ----------
    code : str or None
        The authorization code (success).
    state : str or None
        The state token echoed back by the provider.
    error : str or None
        The OAuth2 error code (failure).
    error_description : str or None
        Human-readable error detail (failure).
    """

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    @property
    def failed(self) -> bool:
        """Whether the provider reported an error."""
        return self.error is not None

    @property
    def error_message(self) -> str:
        """The provider-reported error string."""
        return self.error_description or self.error or ""


class OAuthCallbackServer:
    """Ephemeral loopback HTTP server for capturing OAuth2 redirects.

    Parameters
    ----------
    host : str
        Bind address (default ``"127.0.0.1"``).
    port : int
        Port number (default ``9876``; ``0`` for auto-assign).
    """

    def __init__(self, host: str = "127.0.0.1", port: int = DEFAULT_CALLBACK_PORT) -> None:
        """Initialize the callback server."""
        self._host = host
        self._port = port
        self._server: HTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._result: CallbackResult | None = None
        self._expected_state: str | None = None
        self._result_event = threading.Event()
        self._lock = threading.Lock()
        self._actual_port: int = port

    @property
    def redirect_uri(self) -> str:
        """Get the redirect URI for this callback server.

        Returns
        -------
        str
            The full redirect URI (e.g. ``http://127.0.0.1:9876/callback``).
        """
        return f"http://{self._host}:{self._actual_port}/callback"

    @property
    def is_running(self) -> bool:
        """Whether the listener is currently bound."""
        return self._server is not None

    def start(self, expected_state: str | None = None) -> str:
        """Bind the listener and serve on a daemon thread.

        Calling ``start`` while already running is a no-op.

        Parameters
        ----------
        expected_state : str, optional
            Only redirects carrying this ``state`` are captured. See
            ``expect_state``.

        Returns
        -------
        str
            The redirect URI to use with the OAuth2 provider.

        Raises
        ------
        ListenerError
            If the port is already in use or cannot be bound.
        """
        with self._lock:
            if self._server is not None:
                return self.redirect_uri

            self._result = None
            self._result_event.clear()
            self._expected_state = expected_state

            try:
                server = HTTPServer((self._host, self._port), self._make_handler())
            except OSError as exc:
                msg = f"Cannot bind OAuth callback listener: {exc.strerror or exc}"
                raise ListenerError(msg, host=self._host, port=self._port) from exc

            self._server = server
            self._actual_port = server.server_address[1]
            self._thread = threading.Thread(
                target=server.serve_forever,
                name="voide-oauth-callback",
                daemon=True,
            )
            self._thread.start()

        logger.debug("OAuth callback listener started on %s", self.redirect_uri)
        return self.redirect_uri

    def _make_handler(self) -> type[BaseHTTPRequestHandler]:
        server_ref = self

        class _CallbackHandler(BaseHTTPRequestHandler):
            """HTTP request handler for OAuth2 callbacks."""

            def do_GET(self) -> None:
                """Handle GET requests."""
                parsed = urlparse(self.path)

                if parsed.path == "/callback":
                    params = parse_qs(parsed.query)
                    result = CallbackResult(
                        code=params.get("code", [None])[0],
                        state=params.get("state", [None])[0],
                        error=params.get("error", [None])[0],
                        error_description=params.get("error_description", [None])[0],
                    )

                    if not result.failed and not (result.code and result.state):
                        self._send(400, "Missing code or state parameter", "text/plain")
                        return

                    if not server_ref._capture(result):
                        logger.warning("Ignoring OAuth callback with an unexpected state")
                        self._send(400, "Invalid state parameter", "text/plain")
                        return

                    if result.failed:
                        self._send(400, _error_html(result.error_message))
                    else:
                        self._send(200, _SUCCESS_HTML)

                elif parsed.path == "/":
                    self._send(200, _WAITING_HTML)
                else:
                    self._send(404, "Not found", "text/plain")

            def _send(self, status: int, content: str, content_type: str = "text/html") -> None:
                """Send a response with security headers."""
                encoded = content.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", f"{content_type}; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.send_header("Cache-Control", "no-store")
                self.send_header(
                    "Content-Security-Policy",
                    "default-src 'none'; style-src 'unsafe-inline'",
                )
                self.send_header("X-Content-Type-Options", "nosniff")
                self.end_headers()
                self.wfile.write(encoded)

            def log_message(self, *args: Any) -> None:  # pylint: disable=arguments-differ
                """Route request logging to the voide_oauth logger, without the query string."""
                if len(args) > 1:
                    request_line = str(args[1]).split("?", 1)[0]
                    logger.debug("OAuth callback listener: %s", request_line)

        return _CallbackHandler

    def expect_state(self, state: str | None) -> None:
        """Bind the listener to one authorization request.

        From now on a redirect whose ``state`` differs is answered with
        400 and never captured, so a stray or forged request cannot
        resolve the wait. A redirect already captured with another
        state is discarded.

        Parameters
        ----------
        state : str or None
            The request's state, or None to accept any redirect.
        """
        with self._lock:
            self._expected_state = state
            if state is not None and self._result is not None and self._result.state != state:
                self._result = None
                self._result_event.clear()

    def _capture(self, result: CallbackResult) -> bool:
        with self._lock:
            if self._expected_state is not None and result.state != self._expected_state:
                return False
            # Only the first matching redirect resolves the flow
            if not self._result_event.is_set():
                self._result = result
                self._result_event.set()
            return True


    def wait_for_callback(self, timeout: float = 300.0) -> CallbackResult | None:
        """Block until the redirect arrives or the timeout expires.

        Parameters
        ----------
        timeout : float
            Maximum seconds to wait (default 300).

        Returns
        -------
        CallbackResult or None
            The captured redirect, or None if the timeout expired.
        """
        if self._result_event.wait(timeout=timeout):
            return self._result
        return None

    async def wait(self, timeout: float = 300.0, poll_interval: float = 0.1) -> CallbackResult | None:
        """Await the redirect without blocking the event loop.

        Polls the capture event so the wait can be cancelled.

        Parameters
        ----------
        timeout : float
            Maximum seconds to wait (default 300).
        poll_interval : float
            Seconds between polls (default 0.1).

        Returns
        -------
        CallbackResult or None
            The captured redirect, or None if the timeout expired.
        """
        deadline = time.monotonic() + timeout
        while not self._result_event.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(poll_interval, remaining))
        return self._result

    def stop(self) -> None:
        """Tear down the listener. Safe to call when not running."""
        with self._lock:
            server, thread = self._server, self._thread
            self._server = None
            self._thread = None

        if server is None:
            return
        try:
            server.shutdown()
            server.server_close()
        except OSError as exc:
            logger.debug("OAuth callback listener shutdown: %s", exc)
        if thread is not None and thread.is_alive():
            thread.join(timeout=5)
        logger.debug("OAuth callback listener stopped")

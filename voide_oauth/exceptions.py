"""voide-oauth exception hierarchy.

All voide-oauth exceptions inherit from VoideOAuthError, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


class VoideOAuthError(Exception):
    """Base exception for all voide-oauth errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize voide-oauth exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, status_code, path, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigError(VoideOAuthError):
    """Provider configuration is missing or unknown.

    Raised when a provider name is not in the registry, or when no
    client ID can be resolved for it.
    """

    def __init__(self, message: str, provider: str | None = None, **context: Any) -> None:
        """Initialize configuration error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider name that caused the error.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class StateError(VoideOAuthError):
    """The ``state`` parameter could not be redeemed.

    Covers unknown, expired, already-used, and provider-mismatched
    states. The message is always ``"Invalid state"`` so callers cannot
    tell which check failed.
    """

    def __init__(self, provider: str | None = None) -> None:
        """Initialize state error.

        Parameters
        ----------
        provider : str, optional
            The provider the caller tried to redeem the state for.
        """
        super().__init__("Invalid state", provider=provider)
        self.provider = provider


class NetworkError(VoideOAuthError):
    """Token endpoint request failed.

    Raised when the token endpoint is unreachable, answers with a
    non-2xx status, or returns an OAuth error body.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize network error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        status_code : int, optional
            HTTP status returned by the provider, if any.
        body : str, optional
            Response body returned by the provider, if any.
        provider : str, optional
            The provider name.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, status_code=status_code, **context)
        self.status_code = status_code
        self.body = body
        self.provider = provider


class StorageError(VoideOAuthError):
    """Token file could not be read or written."""

    def __init__(self, message: str, path: str | None = None, **context: Any) -> None:
        """Initialize storage error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        path : str, optional
            The token file involved.
        **context : Any
            Additional context.
        """
        super().__init__(message, path=path, **context)
        self.path = path


class ListenerError(VoideOAuthError):
    """The local callback listener could not be started.

    Raised when the port is already bound or another interactive
    flow already owns the listener.
    """

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        **context: Any,
    ) -> None:
        """Initialize listener error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        host : str, optional
            The bind address.
        port : int, optional
            The bind port.
        **context : Any
            Additional context.
        """
        super().__init__(message, host=host, port=port, **context)
        self.host = host
        self.port = port


class AuthenticationError(VoideOAuthError):
    """The provider rejected the authorization request.

    Raised when the redirect carries an ``error`` parameter, in which
    case the message is the provider-reported error string, or when a
    refresh is requested without a stored refresh token.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        error: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The OAuth2 provider name (e.g., "google", "github").
        error : str, optional
            The ``error`` code from the redirect (e.g., "access_denied").
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider
        self.error = error


class AuthFlowTimeout(AuthenticationError):
    """Authentication flow timed out.

    Raised when the redirect does not reach the callback listener
    within the configured timeout.
    """

    def __init__(
        self,
        message: str,
        timeout: float,
        provider: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize timeout error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        timeout : float
            The timeout value in seconds.
        provider : str, optional
            The OAuth2 provider name.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, timeout=timeout, **context)
        self.timeout = timeout

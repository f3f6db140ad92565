"""voide-oauth - OAuth2 authorization-code and PKCE token manager.

Obtains, stores, refreshes and revokes access tokens for the AI and
cloud providers the voide CLI talks to.
"""

from __future__ import annotations

from .auth import (
    OAUTH_PROVIDERS,
    AuthorizationRequest,
    OAuthManager,
    ProviderConfig,
    ProviderRegistry,
    TokenRecord,
    TokenStatus,
    format_oauth_status,
    get_oauth_manager,
    reset_oauth_manager,
)
from .config import LogSettings, OAuthSettings, VoideSettings, clear_settings_cache, get_settings
from .exceptions import (
    AuthenticationError,
    AuthFlowTimeout,
    ConfigError,
    ListenerError,
    NetworkError,
    StateError,
    StorageError,
    VoideOAuthError,
)
from .log import enable_debug, get_logger, set_level


__version__ = "0.1.0"

__all__ = [
    "OAUTH_PROVIDERS",
    "AuthFlowTimeout",
    "AuthenticationError",
    "AuthorizationRequest",
    "ConfigError",
    "ListenerError",
    "LogSettings",
    "NetworkError",
    "OAuthManager",
    "OAuthSettings",
    "ProviderConfig",
    "ProviderRegistry",
    "StateError",
    "StorageError",
    "TokenRecord",
    "TokenStatus",
    "VoideOAuthError",
    "VoideSettings",
    "__version__",
    "clear_settings_cache",
    "enable_debug",
    "format_oauth_status",
    "get_logger",
    "get_oauth_manager",
    "get_settings",
    "reset_oauth_manager",
    "set_level",
]

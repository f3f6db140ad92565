"""OAuth2 token lifecycle for the voide CLI.

Provides the provider registry, PKCE and state generation, the pending
flow table, the loopback callback listener, token exchange and refresh,
file-backed token storage, and the OAuthManager that ties them together.
"""

from __future__ import annotations

from .callback_server import CallbackResult, OAuthCallbackServer
from .exchanger import TokenExchanger
from .manager import (
    AuthorizationRequest,
    OAuthManager,
    get_oauth_manager,
    reset_oauth_manager,
)
from .pending import PendingFlow, PendingFlowTable
from .pkce import PKCEChallenge, compute_challenge, generate_state
from .providers import OAUTH_PROVIDERS, ProviderConfig, ProviderRegistry, get_provider
from .status import TokenStatus, format_oauth_status
from .token_store import TokenRecord, TokenStore


__all__ = [
    "OAUTH_PROVIDERS",
    "AuthorizationRequest",
    "CallbackResult",
    "OAuthCallbackServer",
    "OAuthManager",
    "PKCEChallenge",
    "PendingFlow",
    "PendingFlowTable",
    "ProviderConfig",
    "ProviderRegistry",
    "TokenExchanger",
    "TokenRecord",
    "TokenStatus",
    "TokenStore",
    "compute_challenge",
    "format_oauth_status",
    "generate_state",
    "get_oauth_manager",
    "get_provider",
    "reset_oauth_manager",
]

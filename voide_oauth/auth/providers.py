"""Static OAuth2 provider registry.

Defines the ProviderConfig record and the read-only table of
built-in providers (Google, Azure AD, GitHub, Anthropic).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ..exceptions import ConfigError


@dataclass(frozen=True)
class ProviderConfig:
    """Endpoints and defaults for one OAuth2 provider.

    Attributes
    ----------
    name : str
        Unique registry key (e.g. ``"google"``).
    authorization_url : str
        The provider's authorization endpoint.
    token_url : str
        The provider's token endpoint.
    scopes : tuple[str, ...]
        Scopes requested by default, in order.
    use_pkce : bool
        Whether PKCE is used unless the caller overrides it.
    client_id : str or None
        Default public client ID, if the tool ships one.
    extra_authorize_params : Mapping[str, str]
        Provider-specific query parameters appended to the
        authorization URL.
    """

    name: str
    authorization_url: str
    token_url: str
    scopes: tuple[str, ...] = ()
    use_pkce: bool = True
    client_id: str | None = None
    extra_authorize_params: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )


OAUTH_PROVIDERS: Mapping[str, ProviderConfig] = MappingProxyType(
    {
        "google": ProviderConfig(
            name="google",
            authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",  # noqa: S106
            scopes=(
                "https://www.googleapis.com/auth/generative-language",
                "https://www.googleapis.com/auth/cloud-platform",
            ),
            use_pkce=True,
            # Google only issues refresh tokens for offline access
            extra_authorize_params=MappingProxyType(
                {"access_type": "offline", "prompt": "consent"}
            ),
        ),
        "azure": ProviderConfig(
            name="azure",
            authorization_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
            token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",  # noqa: S106
            scopes=("https://cognitiveservices.azure.com/.default", "offline_access"),
            use_pkce=True,
        ),
        "github": ProviderConfig(
            name="github",
            authorization_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",  # noqa: S106
            scopes=("repo", "read:user", "read:org"),
            use_pkce=False,
        ),
        "anthropic": ProviderConfig(
            name="anthropic",
            authorization_url="https://console.anthropic.com/oauth/authorize",
            token_url="https://console.anthropic.com/oauth/token",  # noqa: S106
            scopes=("api:read", "api:write"),
            use_pkce=True,
        ),
    }
)


class ProviderRegistry:
    """Read-only lookup of provider configurations.

    Parameters
    ----------
    providers : Mapping[str, ProviderConfig], optional
        The provider table (defaults to :data:`OAUTH_PROVIDERS`).
    """

    def __init__(self, providers: Mapping[str, ProviderConfig] | None = None) -> None:
        """Initialize the registry."""
        table = OAUTH_PROVIDERS if providers is None else providers
        self._providers: Mapping[str, ProviderConfig] = MappingProxyType(dict(table))

    def get(self, name: str) -> ProviderConfig:
        """Look up a provider by name.

        Parameters
        ----------
        name : str
            The provider name.

        Returns
        -------
        ProviderConfig
            The provider's configuration.

        Raises
        ------
        ConfigError
            If ``name`` is not a known provider.
        """
        try:
            return self._providers[name]
        except KeyError:
            msg = f"Unknown OAuth provider: {name}"
            raise ConfigError(msg, provider=name) from None

    def names(self) -> list[str]:
        """Return all provider names in registration order."""
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __iter__(self) -> Iterator[ProviderConfig]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)


_default_registry = ProviderRegistry()


def get_provider(name: str) -> ProviderConfig:
    """Look up a built-in provider by name.

    Raises
    ------
    ConfigError
        If ``name`` is not a built-in provider.
    """
    return _default_registry.get(name)

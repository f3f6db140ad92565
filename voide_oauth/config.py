"""Configuration system for voide-oauth using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.voide] section (project-level)
3. ./voide.toml (project-level, explicit)
4. ~/.voide/config.toml (user-level, overrides project)
5. Environment variables (highest priority)

Environment variables use VOIDE_ prefixes with nested delimiter __.
Example: VOIDE_OAUTH__CALLBACK_PORT, VOIDE_LOG__LEVEL
"""

from __future__ import annotations

import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


VOIDE_DIR = Path.home() / ".voide"
DEFAULT_TOKEN_FILE = VOIDE_DIR / "oauth-tokens.json"


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    voide_toml = Path("voide.toml")
    if voide_toml.exists():
        files.append(voide_toml)

    user_config = VOIDE_DIR / "config.toml"
    if user_config.exists():
        files.append(user_config)

    # VOIDE_CONFIG_FILE is the last file layer
    env_config = os.environ.get("VOIDE_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            continue  # An unreadable config file never blocks login

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("voide", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Settings fields holding client secrets, masked by redacted_dump()
_SENSITIVE_FIELDS: set[str] = {"client_secrets"}

_REDACTED = "********"


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: VOIDE_LOG__
    Example: VOIDE_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="VOIDE_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"


class OAuthSettings(BaseSettings):
    """OAuth2 token manager configuration.

    Environment prefix: VOIDE_OAUTH__
    Example: VOIDE_OAUTH__CALLBACK_PORT=9876
    Example: VOIDE_OAUTH__CLIENT_IDS='{"google": "1234.apps.googleusercontent.com"}'

    TOML section: [oauth] (or [tool.voide.oauth] in pyproject.toml)
    """

    model_config = SettingsConfigDict(
        env_prefix="VOIDE_OAUTH__",
        extra="ignore",
    )

    token_file: Path = Field(
        default=DEFAULT_TOKEN_FILE,
        description="JSON file holding the persisted provider tokens",
    )

    # Callback listener
    callback_host: str = Field(
        default="127.0.0.1",
        description="Loopback address the redirect listener binds to",
    )
    callback_port: int = Field(
        default=9876,
        ge=0,
        le=65535,
        description="Port of the redirect listener (0 picks a free port)",
    )

    # Flow, redirect and HTTP deadlines
    flow_ttl_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Seconds an issued state stays redeemable",
    )
    callback_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Maximum seconds to wait for the provider redirect",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Network timeout for token endpoint requests",
    )
    refresh_buffer_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Seconds before expiry at which a token is refreshed",
    )

    # Client credentials, keyed by provider name
    client_ids: dict[str, str] = Field(
        default_factory=dict,
        description="OAuth2 client ID per provider",
    )
    client_secrets: dict[str, str] = Field(
        default_factory=dict,
        description="OAuth2 client secret per provider (confidential clients only)",
    )

    @field_validator("token_file", mode="before")
    @classmethod
    def expand_token_file(cls, v: Any) -> Any:
        """Expand ``~`` in the token file path."""
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v.expanduser()
        return v


class VoideSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.voide] section
    3. ./voide.toml (project-level)
    4. ~/.voide/config.toml (user-level, overrides project)
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="VOIDE__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    def __init__(self, **data: Any) -> None:
        toml_config = _load_toml_config()
        merged = _deep_merge(toml_config, data)
        # Section env vars (VOIDE_OAUTH__*, VOIDE_LOG__*) beat file values
        for section, section_cls in (("oauth", OAuthSettings), ("log", LogSettings)):
            file_values = merged.get(section)
            if isinstance(file_values, dict):
                merged[section] = section_cls(**_without_env_overrides(section_cls, file_values))
        super().__init__(**merged)

    def redacted_dump(self) -> dict[str, Any]:
        """Dump settings with secrets replaced by a placeholder."""
        data = self.model_dump(mode="json")
        for section in data.values():
            if isinstance(section, dict):
                for name in _SENSITIVE_FIELDS & section.keys():
                    section[name] = {k: _REDACTED for k in section[name]}
        return data


def _without_env_overrides(
    section_cls: type[BaseSettings], values: dict[str, Any]
) -> dict[str, Any]:
    """Drop file values whose field is also set through the environment."""
    prefix = section_cls.model_config.get("env_prefix", "")
    return {
        key: value
        for key, value in values.items()
        if f"{prefix}{key}".upper() not in {name.upper() for name in os.environ}
    }


@lru_cache(maxsize=1)
def get_settings() -> VoideSettings:
    """Get the global settings instance (cached).

    Call clear_settings_cache() to reload configuration.
    """
    return VoideSettings()


def clear_settings_cache() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()

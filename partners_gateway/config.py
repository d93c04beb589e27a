"""
Gateway configuration module.

Provides the service settings with environment variable overrides. Missing
partner credentials are allowed at startup and reported per request.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from partners_gateway.cache import DEFAULT_MAXSIZE, SEARCH_TTL_SECONDS
from partners_gateway.exceptions import ConfigurationError
from partners_gateway.links import LOCAL_LINK_TEMPLATE, LinkMode
from partners_gateway.logging_config import mask_secret
from partners_gateway.signing import TimestampFormat

DEVELOPMENT = "development"
PRODUCTION = "production"


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class GatewayConfig:
    """Configuration for one gateway process.

    Attributes:
        access_key: Partner API access key (COUPANG_ACCESS_KEY).
        secret_key: Partner API secret key (COUPANG_SECRET_KEY). Never logged.
        environment: "development" enables stack traces in error responses.
        host: Bind address for the HTTP server.
        port: Bind port for the HTTP server.
        cache_ttl_seconds: TTL for cached search envelopes.
        cache_maxsize: Maximum number of cached envelopes.
        upstream_timeout_seconds: Total budget for each upstream call.
        link_mode: Preferred trackable-link strategy.
        link_template: Template for locally constructed links.
        timestamp_format: Signed-date layout sent to the partner API.

    Example:
        config = GatewayConfig.from_env()
        local_only = config.with_overrides(link_mode=LinkMode.LOCAL)
    """

    access_key: str = ""
    secret_key: str = ""
    environment: str = PRODUCTION
    host: str = "0.0.0.0"
    port: int = 8787
    cache_ttl_seconds: float = SEARCH_TTL_SECONDS
    cache_maxsize: int = DEFAULT_MAXSIZE
    upstream_timeout_seconds: float = 5.0
    link_mode: LinkMode = LinkMode.API
    link_template: str = LOCAL_LINK_TEMPLATE
    timestamp_format: TimestampFormat = TimestampFormat.SHORT

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be positive")
        if self.cache_maxsize < 1:
            raise ValueError("cache_maxsize must be at least 1")
        if self.upstream_timeout_seconds <= 0:
            raise ValueError("upstream_timeout_seconds must be positive")
        if "{url}" not in self.link_template:
            raise ValueError("link_template must contain a {url} placeholder")
        object.__setattr__(self, "link_mode", LinkMode.parse(self.link_mode))
        object.__setattr__(self, "timestamp_format", TimestampFormat.parse(self.timestamp_format))
        object.__setattr__(self, "environment", (self.environment or PRODUCTION).strip().lower())

    def __repr__(self) -> str:
        return (
            f"GatewayConfig(access_key={mask_secret(self.access_key)!r}, secret_key='***', "
            f"environment={self.environment!r}, host={self.host!r}, port={self.port}, "
            f"link_mode={self.link_mode.value!r}, timestamp_format={self.timestamp_format.value!r})"
        )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> GatewayConfig:
        """Build a config from environment variables (os.environ by default)."""
        env = os.environ if env is None else env
        return cls(
            access_key=(env.get("COUPANG_ACCESS_KEY") or "").strip(),
            secret_key=(env.get("COUPANG_SECRET_KEY") or "").strip(),
            environment=env.get("ENVIRONMENT") or PRODUCTION,
            host=env.get("PARTNERS_GATEWAY_HOST") or "0.0.0.0",
            port=_env_int(env, "PORT", 8787),
            cache_ttl_seconds=_env_float(env, "PARTNERS_GATEWAY_CACHE_TTL", SEARCH_TTL_SECONDS),
            cache_maxsize=_env_int(env, "PARTNERS_GATEWAY_CACHE_MAXSIZE", DEFAULT_MAXSIZE),
            upstream_timeout_seconds=_env_float(env, "PARTNERS_GATEWAY_UPSTREAM_TIMEOUT", 5.0),
            link_mode=env.get("PARTNERS_GATEWAY_LINK_MODE") or LinkMode.API,
            link_template=env.get("PARTNERS_GATEWAY_LINK_TEMPLATE") or LOCAL_LINK_TEMPLATE,
            timestamp_format=env.get("PARTNERS_GATEWAY_TIMESTAMP_FORMAT") or TimestampFormat.SHORT,
        )

    def with_overrides(self, **overrides: Any) -> GatewayConfig:
        """Create a new config with the given fields replaced."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_key and self.secret_key)

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    def require_credentials(self) -> tuple[str, str]:
        """Return (access_key, secret_key) or raise ConfigurationError."""
        if not self.has_credentials:
            raise ConfigurationError("credentials", "API keys not configured")
        return self.access_key, self.secret_key


__all__ = ["DEVELOPMENT", "PRODUCTION", "GatewayConfig"]

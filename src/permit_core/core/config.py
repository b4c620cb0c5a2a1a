"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class CacheConfig(BaseModel):
    default_ttl_ms: int = 5 * 60 * 1000  # 5 minutes
    max_entries: int = 50
    sweep_interval_seconds: float = 60.0
    sweep_enabled: bool = True


class EmitterConfig(BaseModel):
    max_listeners: int = 10
    bus_max_listeners: int = 100  # Ceiling for aggregate event buses


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    metrics_enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level settings for the cache and emitter primitives.

    Loaded from TOML config files, overridden by environment variables.
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    emitter: EmitterConfig = Field(default_factory=EmitterConfig)
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig
    )

    model_config = {"env_prefix": "PERMIT_", "env_nested_delimiter": "__"}

    def validate_limits(self) -> None:
        """Reject non-positive sizes and intervals."""
        from .errors import ConfigError

        if self.cache.default_ttl_ms <= 0:
            raise ConfigError("cache.default_ttl_ms must be positive")
        if self.cache.max_entries <= 0:
            raise ConfigError("cache.max_entries must be positive")
        if self.cache.sweep_interval_seconds <= 0:
            raise ConfigError("cache.sweep_interval_seconds must be positive")
        if self.emitter.max_listeners <= 0:
            raise ConfigError("emitter.max_listeners must be positive")
        if self.emitter.bus_max_listeners <= 0:
            raise ConfigError("emitter.bus_max_listeners must be positive")


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    settings = Settings(**data)
    settings.validate_limits()
    return settings

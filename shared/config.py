"""
Shared configuration management for the access rules engine.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_RULES_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class EngineConfig(BaseConfig):
    """Rules engine configuration."""

    # Route evaluation diagnostics to structlog when no sink is given
    debug_rules: bool = Field(default=False)
    default_operator: str = Field(default="AND")


def get_config() -> EngineConfig:
    """Get rules engine configuration."""
    return EngineConfig()

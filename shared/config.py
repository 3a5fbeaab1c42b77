"""
Shared configuration management for the proxy gateway.
"""

from typing import Any, Dict, Tuple

from pydantic import AliasChoices, Field, ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="GATEWAY_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info", validation_alias=AliasChoices("GATEWAY_LOG_LEVEL", "LOG_LEVEL", "log_level"))

    # Listen address
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535, validation_alias=AliasChoices("GATEWAY_PORT", "PORT", "port"))

    # CORS
    cors_allow_origins: Tuple[str, ...] = Field(default=("*",))
    cors_allow_methods: Tuple[str, ...] = Field(default=("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"))
    cors_allow_headers: Tuple[str, ...] = Field(default=("Content-Type", "Authorization", "Cookie"))
    cors_allow_credentials: bool = Field(default=True)


def load_config(config_cls, **overrides: Any):
    """Load and validate a config class once, raising ConfigurationError on failure."""
    try:
        return config_cls(**overrides)
    except PydanticValidationError as exc:
        problems: Dict[str, str] = {}
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "config"
            problems[location] = error.get("msg", "invalid value")
        raise ConfigurationError(
            f"Invalid {config_cls.__name__}: {', '.join(sorted(problems))}",
            details=problems,
        ) from exc

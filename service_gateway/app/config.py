"""
Gateway configuration and the static backend service catalog.
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple
from urllib.parse import urlsplit

from pydantic import AliasChoices, Field, field_validator

from shared.config import BaseConfig, load_config


@dataclass(frozen=True)
class ServiceDefinition:
    """A backend service the gateway knows how to reach."""

    key: str
    name: str
    endpoints_count: int
    patterns: Tuple[str, ...]


# Order matters: routes are matched first-to-last across this catalog.
SERVICE_CATALOG: Tuple[ServiceDefinition, ...] = (
    ServiceDefinition("auth", "Authentication Service", 5, ("/api/auth/*",)),
    ServiceDefinition("emotion", "Emotion Detection Service", 1, ("/api/emotion-service",)),
    ServiceDefinition("analytics", "Analytics Service", 1, ("/api/logs/*",)),
    ServiceDefinition("notification", "Notification Service", 1, ("/api/send-email",)),
    ServiceDefinition("video", "Video Service", 4, ("/api/upload", "/api/videos/*")),
)


def _service_url_field(key: str):
    return Field(
        validation_alias=AliasChoices(
            f"GATEWAY_{key.upper()}_SERVICE_URL",
            f"{key.upper()}_SERVICE_URL",
            f"{key}_service_url",
        )
    )


class GatewaySettings(BaseConfig):
    """Immutable gateway configuration, validated once at startup.

    Backend base URLs have no defaults: a gateway with an unknown target
    refuses to start. Everything else falls back to the documented value.
    """

    auth_service_url: str = _service_url_field("auth")
    emotion_service_url: str = _service_url_field("emotion")
    analytics_service_url: str = _service_url_field("analytics")
    notification_service_url: str = _service_url_field("notification")
    video_service_url: str = _service_url_field("video")

    # Rate limiting: 100 requests per 15 minutes per client
    rate_limit_max_requests: int = Field(default=100, ge=1)
    rate_limit_window_seconds: float = Field(default=900.0, gt=0)
    # Empty means every path, introspection endpoints included, is limited
    rate_limit_exempt_paths: Tuple[str, ...] = Field(default=())
    trust_forwarded_headers: bool = Field(default=False)

    # Forwarding
    upstream_timeout_seconds: float = Field(default=30.0, gt=0)
    upstream_connect_timeout_seconds: float = Field(default=5.0, gt=0)
    max_body_bytes: int = Field(default=50 * 1024 * 1024, ge=0)
    user_agent: str = Field(default="Proxy-Gateway/1.0")

    # Access log
    access_log_capacity: int = Field(default=100, ge=1)

    @field_validator(
        "auth_service_url",
        "emotion_service_url",
        "analytics_service_url",
        "notification_service_url",
        "video_service_url",
    )
    @classmethod
    def _validate_service_url(cls, value: str) -> str:
        value = value.strip()
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("must be an absolute http(s) URL")
        return value.rstrip("/")

    def service_urls(self) -> Dict[str, str]:
        """Map of service key to base URL, in catalog order."""
        return {service.key: getattr(self, f"{service.key}_service_url") for service in SERVICE_CATALOG}


def load_settings(**overrides: Any) -> GatewaySettings:
    """Load gateway settings from the environment, failing fast on bad input."""
    return load_config(GatewaySettings, **overrides)

"""
Shared fixtures for Gateway tests.
"""

import pytest
from fastapi.testclient import TestClient

from service_gateway.app.config import GatewaySettings
from service_gateway.app.main import GatewayService

SERVICE_URLS = {
    "auth_service_url": "http://auth.test",
    "emotion_service_url": "http://emotion.test",
    "analytics_service_url": "http://analytics.test",
    "notification_service_url": "http://notification.test",
    "video_service_url": "http://video.test",
}


def make_settings(**overrides) -> GatewaySettings:
    """Build settings that ignore the process environment's .env file."""
    values = {**SERVICE_URLS, **overrides}
    return GatewaySettings(_env_file=None, **values)


@pytest.fixture
def settings_factory():
    """Factory for settings with per-test overrides."""
    return make_settings


@pytest.fixture
def settings():
    """Gateway settings pointing at fake backends."""
    return make_settings()


@pytest.fixture
def gateway(settings):
    """Gateway service instance."""
    return GatewayService(settings)


@pytest.fixture
def client(gateway):
    """Test client with the application lifespan running."""
    with TestClient(gateway.app) as test_client:
        yield test_client

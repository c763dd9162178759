import os

# Set testing environment variable
os.environ["TESTING"] = "1"

import pytest
from pydantic import ValidationError

from printhub.core.config import Settings, get_settings


def test_get_settings():
    """Test settings defaults relevant for tests"""
    settings = get_settings()

    assert settings.PROJECT_NAME == "PrintHub"
    assert settings.API_PREFIX == "/api"
    assert settings.is_testing is True
    assert settings.queue_enabled is False
    assert settings.TRACKING_CODE_PREFIX == "PH"


def test_settings_singleton():
    """Test that get_settings returns the same instance"""
    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_broker_url_enables_queue():
    assert Settings(NOTIFICATIONS_BROKER_URL="redis://localhost:6379/1").queue_enabled is True


@pytest.mark.parametrize(
    "url, expected",
    [
        ("postgres://u:p@db/ph", "postgresql+asyncpg://u:p@db/ph"),
        ("postgresql://u:p@db/ph", "postgresql+asyncpg://u:p@db/ph"),
        ("sqlite:///./x.db", "sqlite+aiosqlite:///./x.db"),
        ("sqlite+aiosqlite:///./x.db", "sqlite+aiosqlite:///./x.db"),
    ],
)
def test_async_database_url(url, expected):
    assert Settings(DATABASE_URL=url).sqlalchemy_async_url == expected


def test_list_fields_accept_csv():
    settings = Settings(MANAGER_ROLES="owner, manager", CORS_ORIGINS='["http://a", "http://b"]')
    assert settings.MANAGER_ROLES == ["owner", "manager"]
    assert settings.CORS_ORIGINS == ["http://a", "http://b"]


def test_tracking_prefix_is_validated():
    assert Settings(TRACKING_CODE_PREFIX="ab").TRACKING_CODE_PREFIX == "AB"
    with pytest.raises(ValidationError):
        Settings(TRACKING_CODE_PREFIX="A-B")
    with pytest.raises(ValidationError):
        Settings(MESSAGING_PROVIDER="carrier_pigeon")


def test_safe_dump_masks_credentials():
    dump = Settings(
        NOTIFICATIONS_BROKER_URL="redis://:hunter2@broker:6379/0", WHATSAPP_GATEWAY_TOKEN="abcdefghijkl"
    ).dump_settings_safe()
    assert "hunter2" not in dump["NOTIFICATIONS_BROKER_URL"]
    assert dump["WHATSAPP_GATEWAY_TOKEN"] == "abc***jkl"

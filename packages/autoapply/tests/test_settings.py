"""Tests for configuration settings."""

import pytest
import structlog
from pydantic import ValidationError

from recurring_autoapply.config import (
    FlatSettings,
    configure_logging,
    drop_muted_components,
    get_logger,
    get_settings,
    is_component_muted,
    set_component_logging,
)
from recurring_autoapply.results import AutoApplySettings
from recurring_autoapply.supervisor import StartupConfig


@pytest.fixture
def fresh_settings():
    """Clear the settings cache around a test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_loads_from_env(fresh_settings):
    """Test that settings loads from environment variables set in conftest."""
    settings = get_settings()

    assert settings.auto_apply_max_batch_size == 50
    assert settings.startup_delay_ms == 0
    assert settings.startup_retry_delay_ms == 0


def test_settings_has_defaults(fresh_settings):
    """Test that settings has sensible defaults."""
    settings = get_settings()

    assert settings.auto_apply_enabled is True
    assert settings.auto_apply_timeout_ms == 30000
    assert settings.auto_apply_retry_attempts == 3
    assert settings.startup_enabled is True
    assert settings.startup_max_retries == 3
    assert settings.startup_timeout_ms == 30000
    assert settings.startup_notifications is True
    assert settings.startup_skip_on_error is True
    assert settings.log_level == "INFO"


def test_settings_are_cached(fresh_settings):
    """Test that get_settings returns cached instance."""
    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_env_overrides(fresh_settings, monkeypatch):
    monkeypatch.setenv("AUTO_APPLY_ENABLED", "false")
    monkeypatch.setenv("STARTUP_MAX_RETRIES", "7")

    assert AutoApplySettings.from_settings().global_enabled is False
    assert StartupConfig.from_settings().max_retries == 7


def test_rejects_invalid_batch_size(monkeypatch):
    monkeypatch.setenv("AUTO_APPLY_MAX_BATCH_SIZE", "0")

    with pytest.raises(ValidationError):
        FlatSettings()


def test_configure_logging_json():
    configure_logging(level="DEBUG", format="json")

    get_logger("recurring_autoapply.tests").info("logging_configured")


def test_muted_component_events_are_dropped():
    set_component_logging("startup_supervisor", False)
    try:
        with pytest.raises(structlog.DropEvent):
            drop_muted_components(None, "info", {"event": "x", "component": "startup_supervisor"})

        event = {"event": "x", "component": "auto_apply_engine"}
        assert drop_muted_components(None, "info", event) is event
    finally:
        set_component_logging("startup_supervisor", True)

    assert not is_component_muted("startup_supervisor")


def test_startup_logging_from_env(fresh_settings, monkeypatch):
    monkeypatch.setenv("STARTUP_LOGGING", "false")

    assert StartupConfig.from_settings().enable_logging is False


def test_every_setting_is_described():
    assert all(field.description for field in FlatSettings.model_fields.values())

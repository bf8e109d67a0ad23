"""Unit tests for configuration and settings."""
import pytest

from common.config import get_settings, reset_settings_cache


class TestSettings:
    """Configuration management."""

    def test_get_settings_returns_same_instance(self):
        assert get_settings() is get_settings()

    def test_reset_settings_cache(self):
        settings1 = get_settings()
        reset_settings_cache()

        assert settings1 is not get_settings()

    def test_jwt_configuration(self):
        settings = get_settings()

        assert settings.jwt_secret
        assert settings.jwt_algorithm == "HS256"
        assert settings.access_token_expire_minutes > 0

    def test_scheduling_defaults(self):
        settings = get_settings()

        assert settings.max_series_amount == 2048
        assert settings.min_timeslot_hours == 1
        assert settings.calendar_cache_ttl > 0

    def test_service_ports_configuration(self):
        settings = get_settings()

        assert settings.users_service_port == 8001
        assert settings.rooms_service_port == 8002
        assert settings.bookings_service_port == 8003

    def test_events_disabled_in_tests(self):
        assert get_settings().publish_events is False


class TestEnvironmentOverrides:
    """Settings read from the environment."""

    @pytest.fixture(autouse=True)
    def _fresh_settings(self):
        reset_settings_cache()
        yield
        reset_settings_cache()

    def test_max_series_amount_from_env(self, monkeypatch):
        monkeypatch.setenv("MAX_SERIES_AMOUNT", "10")

        assert get_settings().max_series_amount == 10

    def test_rate_limiting_toggle_from_env(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMITING_ENABLED", "true")

        assert get_settings().rate_limiting_enabled is True

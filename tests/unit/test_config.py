"""
Unit Tests - Configuration and Errors
"""
import pytest
from pydantic import ValidationError

from northwind.config import Settings
from northwind.config.settings import DatabaseSettings, MonitoringSettings
from northwind.errors import (
    ConcurrencyConflictError,
    ConstraintViolationError,
    GraphFormatError,
    InvalidChangeSetError,
    NorthwindError,
)


class TestSettings:
    def test_test_settings(self, test_settings):
        assert test_settings.app_env == "testing"
        assert test_settings.debug is True
        assert not test_settings.is_development

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            Settings(app_env="moon")

    def test_environment_normalized(self):
        assert Settings(app_env="Production").app_env == "production"

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            MonitoringSettings(LOG_FORMAT="xml")

    def test_database_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
        monkeypatch.setenv("DATABASE_SEED_ON_STARTUP", "false")

        settings = DatabaseSettings()

        assert settings.url == "sqlite+aiosqlite:///:memory:"
        assert settings.seed_on_startup is False


class TestErrors:
    @pytest.mark.parametrize(
        "error_type, status_code",
        [
            (GraphFormatError, 400),
            (InvalidChangeSetError, 422),
            (ConcurrencyConflictError, 409),
            (ConstraintViolationError, 409),
        ],
    )
    def test_status_codes(self, error_type, status_code):
        error = error_type("boom")

        assert isinstance(error, NorthwindError)
        assert error.status_code == status_code
        assert error.message == "boom"
        assert str(error) == "boom"

"""Tests for application configuration management."""

import os
import tempfile
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from strategy_engine.config import Settings, get_global_settings, get_settings, reset_global_settings


class TestSettings:
    """Test cases for Settings class."""

    def test_settings_loads_from_env_file(self):
        """Test that settings can load from a .env file."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".env", delete=False) as f:
            f.write("APP_ENV=development\n")
            f.write("SECRET_KEY=test-secret-key-123\n")
            f.write("LOG_LEVEL=DEBUG\n")
            f.write("SCHEDULE_HORIZON_YEARS=40\n")
            f.write("SIMULATION_ENGINE_URL=http://engine:8080\n")
            temp_env_file = f.name

        try:
            with patch.dict(os.environ, {}, clear=True):
                settings = Settings(_env_file=temp_env_file)

                assert settings.app_env == "development"
                assert settings.secret_key == "test-secret-key-123"
                assert settings.log_level == "DEBUG"
                assert settings.schedule_horizon_years == 40
                assert settings.simulation_engine_url == "http://engine:8080"
        finally:
            os.unlink(temp_env_file)

    def test_placeholder_secret_key_raises_exception(self):
        """Test that placeholder SECRET_KEY raises ValidationError."""
        with patch.dict(
            os.environ,
            {"SECRET_KEY": "your-secret-key-here-change-in-production"},
            clear=True,
        ):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            assert "SECRET_KEY must be set to a secure value" in str(exc_info.value)

    def test_valid_secret_key_passes(self):
        """Test that valid SECRET_KEY passes validation."""
        with patch.dict(os.environ, {"SECRET_KEY": "valid-secret-key-123"}, clear=True):
            settings = Settings(_env_file=None)
            assert settings.secret_key == "valid-secret-key-123"

    def test_app_env_validation(self):
        """Test APP_ENV validation."""
        with patch.dict(os.environ, {"APP_ENV": "invalid-env"}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            assert "APP_ENV must be one of" in str(exc_info.value)

    def test_log_level_validation(self):
        """Test LOG_LEVEL validation."""
        with patch.dict(os.environ, {"LOG_LEVEL": "INVALID_LEVEL"}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            assert "LOG_LEVEL must be one of" in str(exc_info.value)

    def test_log_level_case_insensitive(self):
        """Test that LOG_LEVEL is case insensitive."""
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}, clear=True):
            settings = Settings(_env_file=None)
            assert settings.log_level == "DEBUG"

    def test_merge_match_mode_validation(self):
        """Test MERGE_MATCH_MODE accepts strict and loose only."""
        with patch.dict(os.environ, {"MERGE_MATCH_MODE": "LOOSE"}, clear=True):
            assert Settings(_env_file=None).merge_match_mode == "loose"

        with patch.dict(os.environ, {"MERGE_MATCH_MODE": "fuzzy"}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            assert "MERGE_MATCH_MODE must be one of" in str(exc_info.value)

    def test_numeric_bounds(self):
        """Test range checks on the strategy settings."""
        with patch.dict(os.environ, {"SCHEDULE_HORIZON_YEARS": "0"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

        with patch.dict(os.environ, {"SIMULATION_TIMEOUT_SECONDS": "-1"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_default_values(self):
        """Test default values when environment variables are not set."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

            assert settings.app_env == "development"
            assert settings.flask_env == "development"
            assert settings.log_level == "INFO"
            assert settings.schedule_horizon_years == 30
            assert settings.projection_return_rate == 0.07
            assert settings.merge_match_mode == "strict"
            assert settings.simulation_engine_url is None
            assert settings.simulation_timeout_seconds == 30.0

    def test_get_settings_function(self):
        """Test the get_settings function."""
        with patch.dict(os.environ, {"SECRET_KEY": "valid-secret-key-123"}, clear=True):
            settings = get_settings()
            assert isinstance(settings, Settings)
            assert settings.secret_key == "valid-secret-key-123"

    def test_global_settings_cached_until_reset(self):
        """Test that global settings are loaded once until reset."""
        with patch.dict(os.environ, {"PROJECTION_RETURN_RATE": "0.05"}, clear=True):
            first = get_global_settings()
            assert get_global_settings() is first

            reset_global_settings()
            assert get_global_settings() is not first

"""Application configuration management using Pydantic Settings."""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")

    # Flask Configuration
    secret_key: str = Field(default="dev-only-secret-key", alias="SECRET_KEY")
    flask_env: str = Field(default="development", alias="FLASK_ENV")

    # Logging Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Strategy engine behaviour
    schedule_horizon_years: int = Field(
        default=30, ge=1, le=100, alias="SCHEDULE_HORIZON_YEARS"
    )
    projection_return_rate: float = Field(
        default=0.07, ge=0, le=0.5, alias="PROJECTION_RETURN_RATE"
    )
    merge_match_mode: str = Field(default="strict", alias="MERGE_MATCH_MODE")

    # External simulation engine (optional)
    simulation_engine_url: Optional[str] = Field(
        default=None, alias="SIMULATION_ENGINE_URL"
    )
    simulation_timeout_seconds: float = Field(
        default=30.0, gt=0, alias="SIMULATION_TIMEOUT_SECONDS"
    )

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v):
        """Ensure SECRET_KEY is not empty or a placeholder."""
        if not v or v == "your-secret-key-here-change-in-production":
            raise ValueError("SECRET_KEY must be set to a secure value")
        return v

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v):
        """Validate application environment."""
        allowed_envs = {"development", "testing", "production"}
        if v not in allowed_envs:
            raise ValueError(f"APP_ENV must be one of {allowed_envs}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}")
        return v.upper()

    @field_validator("merge_match_mode")
    @classmethod
    def validate_merge_match_mode(cls, v):
        """Validate how plan composition matches modified events."""
        allowed_modes = {"strict", "loose"}
        if v.lower() not in allowed_modes:
            raise ValueError(f"MERGE_MATCH_MODE must be one of {allowed_modes}")
        return v.lower()


def get_settings(env_file: Optional[str] = None) -> Settings:
    """Get application settings instance."""
    if env_file is not None:
        return Settings(_env_file=env_file)
    return Settings()


# Global settings instance - created lazily on first use
_settings: Optional[Settings] = None


def get_global_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = get_settings()
    return _settings


def reset_global_settings() -> None:
    """Reset global settings instance (useful for testing)."""
    global _settings
    _settings = None

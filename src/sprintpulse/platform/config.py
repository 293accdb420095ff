"""
SprintPulse Configuration Management

Uses Pydantic Settings for type-safe configuration from environment variables.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # =========================================================================
    # APPLICATION
    # =========================================================================
    APP_NAME: str = "SprintPulse"
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "info"
    VERSION: str = "0.1.0"

    # =========================================================================
    # SPRINT HEALTH
    # =========================================================================
    HEALTH_TREND_DAYS: int = 14
    HEALTH_TREND_MAX_CONCURRENCY: int = 4

    # =========================================================================
    # FEATURE FLAGS
    # =========================================================================
    # Used when the activity source does not carry a per-project setting
    FEATURE_PROACTIVE_GUIDANCE_ENABLED: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Singleton instance for easy import
settings = get_settings()

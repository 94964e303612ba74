"""
Settings and environment management module for the Quota Gate backend.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for local development (every setting has one)
- Singleton pattern via @lru_cache for efficient access

Environment Variables:
- SURVEY_API_URL: Base URL of the remote survey API / quota oracle
- VENDOR_REDIRECT_BASE_URL: Base URL of the vendor redirect endpoint
- PUBLIC_SURVEY_BASE_URL: Base URL used for locally generated survey links
- REQUEST_TIMEOUT_SECONDS: Hard cutoff for every remote call (default: 15)
- AUTO_RESTART_DELAY_SECONDS: Delay before an auto-restarting survey resets
- DEFAULT_TOTAL_TARGET: Total target offered when quota setup starts
- LOG_LEVEL: Root logging level (default: INFO)
- CORS_ORIGINS: Comma separated list of allowed origins

Usage:
    from quotagate.core.config import get_settings

    settings = get_settings()
    timeout = settings.request_timeout_seconds
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        survey_api_url: Base URL of the remote survey API (share tokens,
            screening questions, quota check, response submission).
        vendor_redirect_base_url: Base URL the vendor completion beacon is sent to.
        public_survey_base_url: Base URL for the local fallback survey link.
        request_timeout_seconds: Timeout applied to every remote request.
        auto_restart_delay_seconds: Default delay before a kiosk-style survey resets.
        default_total_target: Total target proposed for a fresh quota model.
        default_item_target: Target assigned when an operator toggles a bucket on.
        log_level: Root logging level.
        cors_origins: Comma separated CORS origins.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Remote Services
    # =========================================================================

    survey_api_url: str = 'http://localhost:3000'

    # Vendor beacons go to a separate host in production
    vendor_redirect_base_url: str = 'http://localhost:3000/api'

    public_survey_base_url: str = 'http://localhost:3000/survey'

    # Hard cutoff; calls are never retried
    request_timeout_seconds: float = 15.0

    # =========================================================================
    # Quota Defaults
    # =========================================================================

    default_total_target: int = 100
    default_item_target: int = 10

    # =========================================================================
    # Respondent Flow
    # =========================================================================

    auto_restart_delay_seconds: float = 5.0

    # =========================================================================
    # Service
    # =========================================================================

    log_level: str = 'INFO'
    cors_origins: str = 'http://localhost:3000'

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(',') if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        get_settings.cache_clear()
    """
    return Settings()

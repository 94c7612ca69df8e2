"""
Application configuration.

Settings come from environment variables and an env file, looked up in order:
1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
2. .env (fallback)

Registry policy values (liveness window, message retention, code length) live
here too so the server and the tests share one source of truth.
"""
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Server and client settings."""

    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Venue Tracker API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8001

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "300/minute"
    RATE_LIMIT_POLL: str = "120/minute"  # one poll per second, with room for overlapping ticks
    RATE_LIMIT_WRITE: str = "60/minute"  # location, chat and votes, per endpoint
    RATE_LIMIT_JOIN: str = "20/minute"

    # CORS - comma-separated string for env var parsing
    CORS_ORIGINS_STR: str = ""

    # Registry policy
    LIVENESS_WINDOW_SECONDS: int = 120
    MESSAGE_RETENTION: int = 50
    GROUP_CODE_LENGTH: int = 4
    DEFAULT_MAP_IMAGE: str = "/venue-map.png"

    # Background jobs
    STATS_REFRESH_SECONDS: int = 30
    SLOW_REQUEST_MS: int = 1000

    # Client
    CLIENT_BASE_URL: str = "http://localhost:8001"
    CLIENT_TIMEOUT_SECONDS: float = 5.0
    POLL_INTERVAL_SECONDS: float = 1.0
    CLIENT_CACHE_PATH: str = str(Path.home() / ".venue_tracker" / "cache.json")

    @property
    def CORS_ORIGINS(self) -> list[str]:
        """CORS origins with environment-aware defaults."""
        if self.CORS_ORIGINS_STR:
            origins = [o.strip() for o in self.CORS_ORIGINS_STR.split(",") if o.strip()]
            if origins:
                if self.is_production() and "*" in origins:
                    logger.warning(
                        "Wildcard CORS origins (*) are not allowed in production. "
                        "Set explicit origins in CORS_ORIGINS_STR."
                    )
                    return []
                return origins

        if self.is_production():
            logger.warning("CORS_ORIGINS_STR not set in production; no origins allowed")
            return []

        return [
            "http://localhost:3000",
            "http://localhost:8001",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8001",
        ]

    @property
    def liveness_window_ms(self) -> int:
        return self.LIVENESS_WINDOW_SECONDS * 1000

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == "production"


def _load_env_file() -> Path:
    """
    Pick the env file for the current ENVIRONMENT.

    Prefers .env.{ENVIRONMENT}, falls back to .env. The returned path may not
    exist, in which case pydantic-settings reads the process environment only.
    """
    environment = os.getenv("ENVIRONMENT", "development")

    env_file = PROJECT_ROOT / f".env.{environment}"
    if env_file.exists():
        logger.info(f"Loading environment from {env_file.name}")
        return env_file

    default_env = PROJECT_ROOT / ".env"
    if default_env.exists():
        logger.info(f"Loading environment from .env (environment: {environment})")
    return default_env


_env_file = _load_env_file()


class _SettingsWithEnvFile(Settings):
    model_config = ConfigDict(
        env_file=str(_env_file),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = _SettingsWithEnvFile()

"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "HomeCare Usage API"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"
    DEBUG: bool = False

    # Database - REQUIRED
    DATABASE_URL: str

    # Redis - REQUIRED (usage update channel)
    REDIS_URL: str

    # Security - REQUIRED (no defaults for sensitive values)
    SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15

    # CORS
    CORS_ORIGINS: list[str] = []

    # Usage tracking
    USAGE_NOTIFICATIONS_ENABLED: bool = True
    USAGE_CHANNEL_PREFIX: str = "usage-updates"
    USAGE_NOTIFY_TIMEOUT_SECONDS: float = 1.0

    # Admin dashboard
    ADMIN_STATS_CACHE_TTL_SECONDS: float = 120.0

    # Observability
    LOG_JSON: bool = True
    OTLP_ENDPOINT: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()

"""Core module for configuration and utilities."""

from homecare.core.config import settings
from homecare.core.database import Base, get_db, get_session
from homecare.core.redis import get_redis, redis_client

__all__ = [
    "settings",
    "Base",
    "get_db",
    "get_session",
    "get_redis",
    "redis_client",
]

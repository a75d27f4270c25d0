"""Real-time usage update notifications.

Usage changes are published on a per-user Redis pub/sub channel; the
socket gateway that relays them to browsers lives outside this service.
Publishing is best-effort: a failure is logged and counted, never raised.
The caller waits only for the Redis PUBLISH reply, and never longer than
``USAGE_NOTIFY_TIMEOUT_SECONDS``; that timeout is the most a tracking
request can be delayed by a slow or unreachable Redis.
"""

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis

from homecare.core.config import settings
from homecare.core.logging import log_error, log_warning
from homecare.core.metrics import USAGE_NOTIFICATION_FAILURES_TOTAL

logger = logging.getLogger(__name__)

USAGE_UPDATE_EVENT = "usage.updated"


class UsageUpdateChannel(ABC):
    """Destination for usage update payloads."""

    @abstractmethod
    async def publish(self, user_id: uuid.UUID, payload: dict) -> None:
        """Deliver a payload to the user's channel.

        Raises whatever the transport raises; callers decide what to swallow.
        """


class RedisUsageChannel(UsageUpdateChannel):
    """Publishes JSON payloads to ``<prefix>:<user_id>``."""

    def __init__(self, client: redis.Redis, prefix: str = settings.USAGE_CHANNEL_PREFIX):
        self.client = client
        self.prefix = prefix

    def channel_name(self, user_id: uuid.UUID) -> str:
        return f"{self.prefix}:{user_id}"

    async def publish(self, user_id: uuid.UUID, payload: dict) -> None:
        receivers = await self.client.publish(
            self.channel_name(user_id),
            json.dumps(payload, default=str),
        )
        logger.debug(
            "Usage update published",
            extra={"user_id": str(user_id), "receivers": receivers},
        )


class UsageNotifier:
    """Best-effort wrapper around a ``UsageUpdateChannel``.

    ``notify_usage_changed`` returns within ``timeout_seconds`` whatever the
    channel does; a publish still pending then is cancelled.
    """

    def __init__(
        self,
        channel: Optional[UsageUpdateChannel],
        enabled: bool = True,
        timeout_seconds: float = settings.USAGE_NOTIFY_TIMEOUT_SECONDS,
    ):
        self.channel = channel
        self.enabled = enabled and channel is not None
        self.timeout_seconds = timeout_seconds

    async def notify_usage_changed(self, user_id: uuid.UUID, payload: dict) -> bool:
        """Publish a usage update.

        Args:
            user_id: Owner of the usage period
            payload: ``{userId, usage, limits, warnings, perks}``

        Returns:
            True if the channel accepted the payload
        """
        if not self.enabled:
            return False

        message = {"event": USAGE_UPDATE_EVENT, **payload}
        try:
            await asyncio.wait_for(
                self.channel.publish(user_id, message),
                timeout=self.timeout_seconds,
            )
            return True
        except asyncio.TimeoutError:
            USAGE_NOTIFICATION_FAILURES_TOTAL.inc()
            log_warning(
                logger,
                f"Usage update for user {user_id} timed out after {self.timeout_seconds}s",
                user_id=str(user_id),
            )
            return False
        except Exception as e:
            USAGE_NOTIFICATION_FAILURES_TOTAL.inc()
            log_error(
                logger,
                f"Failed to publish usage update for user {user_id}",
                exception=e,
                user_id=str(user_id),
            )
            return False

"""Admin usage statistics.

Aggregates are expensive relative to how often the dashboard polls, so
results are held in a process-local TTL cache.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homecare.core.cache import TTLCache
from homecare.core.clock import Clock, utc_now
from homecare.core.config import settings
from homecare.core.logging import log_error
from homecare.core.metrics import USAGE_STATS_CACHE_TOTAL
from homecare.modules.usage.exceptions import UsagePersistenceError
from homecare.modules.usage.periods import month_start
from homecare.modules.usage.repository import UsagePeriodRepository
from homecare.modules.usage.schemas import UsageStatsResponse

logger = logging.getLogger(__name__)

USAGE_STATS_CACHE_KEY = "usage_stats"

usage_stats_cache: TTLCache[UsageStatsResponse] = TTLCache(
    ttl_seconds=settings.ADMIN_STATS_CACHE_TTL_SECONDS,
)


class AdminUsageService:
    """Service for platform-wide usage statistics."""

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[TTLCache[UsageStatsResponse]] = None,
        clock: Clock = utc_now,
    ):
        self.session = session
        self.period_repo = UsagePeriodRepository(session)
        self.cache = cache if cache is not None else usage_stats_cache
        self.clock = clock

    async def get_usage_stats(self, refresh: bool = False) -> UsageStatsResponse:
        """Totals across every period active right now.

        Args:
            refresh: Bypass and repopulate the cache

        Returns:
            UsageStatsResponse with per-user average services
        """
        if not refresh:
            cached = self.cache.get(USAGE_STATS_CACHE_KEY)
            if cached is not None:
                USAGE_STATS_CACHE_TOTAL.labels(result="hit").inc()
                return cached
        USAGE_STATS_CACHE_TOTAL.labels(result="miss").inc()

        now = self.clock()
        try:
            totals = await self.period_repo.get_active_totals(now)
        except SQLAlchemyError as e:
            log_error(logger, "Failed to aggregate usage stats", exception=e)
            raise UsagePersistenceError("Failed to load usage stats") from e

        users = totals["total_users"]
        stats = UsageStatsResponse(
            total_users=users,
            total_services=totals["total_services"],
            total_savings=round(totals["total_savings"], 2),
            average_services_per_user=round(totals["total_services"] / users, 2) if users else 0.0,
            period_start=month_start(now),
        )
        return self.cache.set(USAGE_STATS_CACHE_KEY, stats)

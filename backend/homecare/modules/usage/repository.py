"""Repository for usage period database operations.

Counter updates are single ``UPDATE ... SET col = col + :n`` statements so
concurrent requests for the same user cannot lose increments. Period
creation leans on the (user_id, period_start) unique constraint.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from homecare.modules.usage.models import UsagePeriod, SubscriptionTier
from homecare.modules.usage.periods import PeriodBounds


class UsagePeriodRepository:
    """Repository for usage period operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, period_id: uuid.UUID) -> Optional[UsagePeriod]:
        """Get a period by ID, bypassing stale identity-map state."""
        result = await self.session.execute(
            select(UsagePeriod)
            .where(UsagePeriod.id == period_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_latest(self, user_id: uuid.UUID) -> Optional[UsagePeriod]:
        """Get the user's most recent period, expired or not."""
        result = await self.session.execute(
            select(UsagePeriod)
            .where(UsagePeriod.user_id == user_id)
            .order_by(UsagePeriod.period_start.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_period(
        self,
        user_id: uuid.UUID,
        period_start: datetime,
    ) -> Optional[UsagePeriod]:
        result = await self.session.execute(
            select(UsagePeriod)
            .where(
                UsagePeriod.user_id == user_id,
                UsagePeriod.period_start == period_start,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        limit: int = 12,
    ) -> list[UsagePeriod]:
        """Get the user's periods, newest first."""
        result = await self.session.execute(
            select(UsagePeriod)
            .where(UsagePeriod.user_id == user_id)
            .order_by(UsagePeriod.period_start.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def create_period(
        self,
        user_id: uuid.UUID,
        bounds: PeriodBounds,
        tier: SubscriptionTier,
    ) -> UsagePeriod:
        """Open an empty period, or return the one a concurrent request opened.

        Args:
            user_id: Owner of the period
            bounds: Period start/end
            tier: Tier the period is being opened under

        Returns:
            The stored period for (user_id, bounds.start)
        """
        period = UsagePeriod(
            user_id=user_id,
            tier=tier.value,
            period_start=bounds.start,
            period_end=bounds.end,
            services_used=0,
            discounts_saved=0.0,
            discounts_overflow=0.0,
            priority_bookings=0,
            emergency_services=0,
        )
        self.session.add(period)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            existing = await self.get_for_period(user_id, bounds.start)
            if existing is None:
                raise
            return existing
        return period

    async def increment_services(
        self,
        period_id: uuid.UUID,
        tier: SubscriptionTier,
        priority_bookings: int = 0,
        emergency_services: int = 0,
    ) -> Optional[UsagePeriod]:
        """Atomically count one completed service."""
        await self.session.execute(
            update(UsagePeriod)
            .where(UsagePeriod.id == period_id)
            .values(
                services_used=UsagePeriod.services_used + 1,
                priority_bookings=UsagePeriod.priority_bookings + priority_bookings,
                emergency_services=UsagePeriod.emergency_services + emergency_services,
                tier=tier.value,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return await self.get_by_id(period_id)

    async def add_discount(
        self,
        period_id: uuid.UUID,
        tier: SubscriptionTier,
        amount: float,
        cap: Optional[float],
    ) -> Optional[UsagePeriod]:
        """Atomically add a discount, clamping the stored total at ``cap``.

        Whatever does not fit under the cap is added to
        ``discounts_overflow``. ``cap`` of None means no clamp.
        """
        values: dict = {"tier": tier.value}
        if cap is None:
            values["discounts_saved"] = UsagePeriod.discounts_saved + amount
        else:
            uncapped = UsagePeriod.discounts_saved + amount
            values["discounts_saved"] = case(
                (uncapped > cap, cap),
                else_=uncapped,
            )
            values["discounts_overflow"] = UsagePeriod.discounts_overflow + case(
                (uncapped > cap, uncapped - cap),
                else_=0.0,
            )

        await self.session.execute(
            update(UsagePeriod)
            .where(UsagePeriod.id == period_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return await self.get_by_id(period_id)

    async def reset_counters(self, period_id: uuid.UUID) -> Optional[UsagePeriod]:
        """Zero every counter of a period."""
        await self.session.execute(
            update(UsagePeriod)
            .where(UsagePeriod.id == period_id)
            .values(
                services_used=0,
                discounts_saved=0.0,
                discounts_overflow=0.0,
                priority_bookings=0,
                emergency_services=0,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return await self.get_by_id(period_id)

    async def get_active_totals(self, now: datetime) -> dict:
        """Aggregate counters across all periods active at ``now``."""
        result = await self.session.execute(
            select(
                func.count(func.distinct(UsagePeriod.user_id)),
                func.coalesce(func.sum(UsagePeriod.services_used), 0),
                func.coalesce(func.sum(UsagePeriod.discounts_saved), 0.0),
            ).where(
                UsagePeriod.period_start <= now,
                UsagePeriod.period_end > now,
            )
        )
        total_users, total_services, total_savings = result.one()
        return {
            "total_users": int(total_users or 0),
            "total_services": int(total_services or 0),
            "total_savings": float(total_savings or 0.0),
        }

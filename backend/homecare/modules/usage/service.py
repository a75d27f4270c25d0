"""Usage tracking service.

Orchestrates the usage flow for one request: pick the effective period,
apply the atomic counter update, evaluate thresholds and publish the
result. Rollover is lazy; there is no scheduled reset job.
"""

import logging
import math
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homecare.core.clock import Clock, utc_now
from homecare.core.logging import log_error, log_info
from homecare.core.metrics import USAGE_EVENTS_TOTAL, USAGE_WARNINGS_TOTAL
from homecare.core.tracing import add_span_attributes, record_usage_counters, usage_span
from homecare.modules.usage.exceptions import (
    UsagePeriodNotFoundError,
    UsagePersistenceError,
    UsageValidationError,
)
from homecare.modules.usage.limits import TierLimits, get_tier_limits, parse_tier
from homecare.modules.usage.models import (
    ResourceCategory,
    ServiceType,
    SubscriptionTier,
    UsagePeriod,
)
from homecare.modules.usage.notifications import UsageNotifier
from homecare.modules.usage.periods import (
    PeriodState,
    effective_period,
    period_state,
)
from homecare.modules.usage.repository import UsagePeriodRepository
from homecare.modules.usage.schemas import (
    PerkStatusResponse,
    TierLimitsResponse,
    UsagePeriodResponse,
    UsageWarningResponse,
    dump,
)
from homecare.modules.usage.thresholds import (
    PerkStatus,
    QuotaCheck,
    UsageWarning,
    check_quota,
    check_usage_warnings,
    get_perk_status,
)

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 100


@dataclass
class UsageSnapshot:
    """A period together with everything derived from it under one tier."""
    period: UsagePeriod
    tier: SubscriptionTier
    limits: TierLimits
    warnings: list[UsageWarning]
    perks: list[PerkStatus]
    state: PeriodState


def parse_service_type(value: "str | ServiceType | None") -> ServiceType:
    """Parse a service type name.

    Raises:
        UsageValidationError: If the name is not a known service type
    """
    if isinstance(value, ServiceType):
        return value
    if not isinstance(value, str) or not value.strip():
        raise UsageValidationError("serviceType is required")
    try:
        return ServiceType(value.strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in ServiceType)
        raise UsageValidationError(
            f"Invalid service type '{value}'. Expected one of: {valid}"
        ) from None


def parse_category(value: "str | ResourceCategory") -> ResourceCategory:
    if isinstance(value, ResourceCategory):
        return value
    try:
        return ResourceCategory(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(c.value for c in ResourceCategory)
        raise UsageValidationError(
            f"Invalid usage category '{value}'. Expected one of: {valid}"
        ) from None


def validate_amount(amount: float, field: str = "discountAmount") -> float:
    """Reject non-numeric, negative, NaN and infinite amounts."""
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise UsageValidationError(f"{field} must be a number")
    amount = float(amount)
    if math.isnan(amount) or math.isinf(amount):
        raise UsageValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise UsageValidationError(f"{field} must not be negative")
    return amount


def empty_period(user_id: uuid.UUID, tier: SubscriptionTier, start: datetime, end: datetime) -> UsagePeriod:
    """A transient, all-zero period. Never added to a session."""
    return UsagePeriod(
        user_id=user_id,
        tier=tier.value,
        period_start=start,
        period_end=end,
        services_used=0,
        discounts_saved=0.0,
        discounts_overflow=0.0,
        priority_bookings=0,
        emergency_services=0,
    )


class UsageTrackingService:
    """Service for per-user subscription usage.

    Args:
        session: Request-scoped database session
        notifier: Publishes usage updates; None disables publishing
        clock: Source of naive-UTC "now"
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[UsageNotifier] = None,
        clock: Clock = utc_now,
    ):
        self.session = session
        self.period_repo = UsagePeriodRepository(session)
        self.notifier = notifier
        self.clock = clock

    @asynccontextmanager
    async def _storage(self, operation: str, user_id: uuid.UUID):
        """Translate storage failures into ``UsagePersistenceError``."""
        try:
            yield
        except SQLAlchemyError as e:
            await self.session.rollback()
            log_error(
                logger,
                f"Usage {operation} failed for user {user_id}",
                exception=e,
                user_id=str(user_id),
                operation=operation,
            )
            raise UsagePersistenceError(f"Failed to {operation.replace('_', ' ')}") from e

    async def _active_period(
        self,
        user_id: uuid.UUID,
        tier: SubscriptionTier,
    ) -> UsagePeriod:
        """The period a write at ``now`` goes to, opening it if needed."""
        now = self.clock()
        latest = await self.period_repo.get_latest(user_id)
        effective = effective_period(now, latest)
        if not effective.is_new:
            return latest

        period = await self.period_repo.create_period(user_id, effective.bounds, tier)
        log_info(
            logger,
            "Opened usage period",
            user_id=str(user_id),
            period_start=effective.bounds.start.isoformat(),
            tier=tier.value,
        )
        return period

    # ==================== Accumulator ====================

    async def track_service_usage(
        self,
        user_id: uuid.UUID,
        service_type: "str | ServiceType",
        tier: "str | SubscriptionTier",
    ) -> UsagePeriod:
        """Count one completed service against the user's current period.

        Every service increments ``services_used``; priority bookings and
        emergency services also bump their own counters.

        Args:
            user_id: Customer ID
            service_type: regular_service, priority_booking or emergency_service
            tier: Customer's subscription tier

        Returns:
            The updated period

        Raises:
            UsageValidationError: Bad tier or service type
            UsagePersistenceError: Storage failure
        """
        tier = parse_tier(tier)
        service_type = parse_service_type(service_type)

        with usage_span("track_service", user_id, tier, service_type=service_type.value):
            async with self._storage("track_service_usage", user_id):
                period = await self._active_period(user_id, tier)
                updated = await self.period_repo.increment_services(
                    period.id,
                    tier,
                    priority_bookings=1 if service_type == ServiceType.PRIORITY_BOOKING else 0,
                    emergency_services=1 if service_type == ServiceType.EMERGENCY else 0,
                )
            if updated is None:
                raise UsagePersistenceError("Usage period disappeared during update")
            record_usage_counters(updated)

            USAGE_EVENTS_TOTAL.labels(category=ResourceCategory.SERVICES.value, tier=tier.value).inc()
            if service_type == ServiceType.PRIORITY_BOOKING:
                USAGE_EVENTS_TOTAL.labels(category=ResourceCategory.BOOKINGS.value, tier=tier.value).inc()
            elif service_type == ServiceType.EMERGENCY:
                USAGE_EVENTS_TOTAL.labels(category=ResourceCategory.EMERGENCY.value, tier=tier.value).inc()

            log_info(
                logger,
                "Service usage tracked",
                user_id=str(user_id),
                service_type=service_type.value,
                tier=tier.value,
                services_used=updated.services_used,
            )
            await self._after_mutation(updated, tier)
            return updated

    async def track_discount_usage(
        self,
        user_id: uuid.UUID,
        amount: float,
        tier: "str | SubscriptionTier",
    ) -> UsagePeriod:
        """Add a discount to the user's savings for the current period.

        The stored total never exceeds the tier's discount cap; the part
        that does not fit is recorded in ``discounts_overflow``.

        Raises:
            UsageValidationError: Bad tier or amount
            UsagePersistenceError: Storage failure
        """
        tier = parse_tier(tier)
        amount = validate_amount(amount)
        cap = get_tier_limits(tier).max_discount_amount

        with usage_span("track_discount", user_id, tier, amount=amount):
            async with self._storage("track_discount_usage", user_id):
                period = await self._active_period(user_id, tier)
                updated = await self.period_repo.add_discount(period.id, tier, amount, cap)
            if updated is None:
                raise UsagePersistenceError("Usage period disappeared during update")

            USAGE_EVENTS_TOTAL.labels(category=ResourceCategory.DISCOUNTS.value, tier=tier.value).inc()
            record_usage_counters(updated)

            log_info(
                logger,
                "Discount usage tracked",
                user_id=str(user_id),
                amount=amount,
                tier=tier.value,
                discounts_saved=updated.discounts_saved,
                discounts_overflow=updated.discounts_overflow,
            )
            await self._after_mutation(updated, tier)
            return updated

    # ==================== Reads ====================

    async def get_usage(
        self,
        user_id: uuid.UUID,
        tier: "str | SubscriptionTier | None" = None,
    ) -> UsageSnapshot:
        """Current usage with limits, warnings and perk availability.

        Nothing is written: a user without a period (or whose period has
        expired) gets an all-zero view of the current period.

        Args:
            user_id: Customer ID
            tier: Tier to evaluate against; defaults to the tier stored on
                the period, then STARTER
        """
        requested_tier = parse_tier(tier) if tier else None
        now = self.clock()

        async with self._storage("get_usage", user_id):
            latest = await self.period_repo.get_latest(user_id)

        effective = effective_period(now, latest)
        if requested_tier is not None:
            resolved = requested_tier
        elif latest is not None:
            resolved = parse_tier(latest.tier)
        else:
            resolved = SubscriptionTier.STARTER

        if effective.is_new:
            period = empty_period(user_id, resolved, effective.bounds.start, effective.bounds.end)
        else:
            period = latest

        return self.build_snapshot(period, resolved, now)

    def build_snapshot(
        self,
        period: UsagePeriod,
        tier: SubscriptionTier,
        now: Optional[datetime] = None,
    ) -> UsageSnapshot:
        now = now or self.clock()
        warnings = check_usage_warnings(period, tier)
        total = sum(period.usage_for(category) for category in ResourceCategory)
        return UsageSnapshot(
            period=period,
            tier=tier,
            limits=get_tier_limits(tier),
            warnings=warnings,
            perks=get_perk_status(period, tier, period.period_end),
            state=period_state(now, period, total, bool(warnings)),
        )

    async def check_quota(
        self,
        user_id: uuid.UUID,
        category: "str | ResourceCategory",
        tier: "str | SubscriptionTier | None" = None,
        amount: float = 1.0,
    ) -> QuotaCheck:
        """Whether ``amount`` more units of ``category`` fit this period."""
        category = parse_category(category)
        amount = validate_amount(amount, field="amount")
        snapshot = await self.get_usage(user_id, tier)
        return check_quota(snapshot.period, snapshot.tier, category, amount)

    async def get_history(
        self,
        user_id: uuid.UUID,
        limit: int = 12,
    ) -> list[UsagePeriod]:
        """The user's stored periods, newest first."""
        if limit < 1 or limit > MAX_HISTORY_LIMIT:
            raise UsageValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")
        async with self._storage("get_history", user_id):
            return await self.period_repo.list_for_user(user_id, limit=limit)

    # ==================== Period reset ====================

    async def reset_usage_for_period(self, user_id: uuid.UUID) -> UsagePeriod:
        """Zero the user's counters for the active period.

        If the latest period has already ended, a new empty period is opened
        instead and the old one is left untouched as history.

        Raises:
            UsagePeriodNotFoundError: The user has never tracked usage
            UsagePersistenceError: Storage failure
        """
        now = self.clock()
        with usage_span("reset_period", user_id):
            async with self._storage("reset_usage", user_id):
                latest = await self.period_repo.get_latest(user_id)
                if latest is None:
                    raise UsagePeriodNotFoundError(f"No usage period for user {user_id}")

                tier = parse_tier(latest.tier)
                effective = effective_period(now, latest)
                if effective.is_new:
                    period = await self.period_repo.create_period(user_id, effective.bounds, tier)
                else:
                    period = await self.period_repo.reset_counters(latest.id)
            if period is None:
                raise UsagePersistenceError("Usage period disappeared during reset")
            record_usage_counters(period)
            add_span_attributes({"usage.tier": tier.value, "usage.rotated": effective.is_new})

            log_info(
                logger,
                "Usage reset",
                user_id=str(user_id),
                period_start=period.period_start.isoformat(),
                rotated=effective.is_new,
            )
            await self._after_mutation(period, tier)
            return period

    # ==================== Notifications ====================

    async def _after_mutation(self, period: UsagePeriod, tier: SubscriptionTier) -> None:
        snapshot = self.build_snapshot(period, tier)
        for warning in snapshot.warnings:
            USAGE_WARNINGS_TOTAL.labels(
                kind=warning.kind.value,
                severity=warning.severity.value,
            ).inc()

        if self.notifier is None:
            return
        await self.notifier.notify_usage_changed(
            period.user_id,
            build_usage_payload(snapshot),
        )


def build_usage_payload(snapshot: UsageSnapshot) -> dict:
    """``{userId, usage, limits, warnings, perks}`` for the usage channel."""
    return {
        "userId": str(snapshot.period.user_id),
        "usage": dump(UsagePeriodResponse.model_validate(snapshot.period)),
        "limits": dump(TierLimitsResponse.model_validate(snapshot.limits.to_dict())),
        "warnings": [dump(UsageWarningResponse.from_warning(w)) for w in snapshot.warnings],
        "perks": [dump(PerkStatusResponse.from_perk(p)) for p in snapshot.perks],
    }

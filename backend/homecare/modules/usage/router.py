"""FastAPI router for customer usage tracking.

Exposes usage tracking, usage reads, quota checks and period reset.
"""

import uuid
from typing import Optional

import redis.asyncio as redis
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from homecare.core.config import settings
from homecare.core.database import get_db
from homecare.core.redis import get_redis
from homecare.modules.auth.jwt import get_current_user_id
from homecare.modules.usage.exceptions import (
    UsagePeriodNotFoundError,
    UsagePersistenceError,
    UsageServiceError,
    UsageValidationError,
)
from homecare.modules.usage.notifications import RedisUsageChannel, UsageNotifier
from homecare.modules.usage.schemas import (
    Envelope,
    PerkStatusResponse,
    QuotaCheckResponse,
    TierLimitsResponse,
    TrackDiscountRequest,
    TrackUsageRequest,
    UsagePeriodResponse,
    UsageSummaryResponse,
    UsageWarningResponse,
)
from homecare.modules.usage.service import UsageSnapshot, UsageTrackingService

router = APIRouter(prefix="/customer", tags=["usage"])


def get_usage_notifier(client: redis.Redis = Depends(get_redis)) -> UsageNotifier:
    """Dependency to get the usage update notifier."""
    return UsageNotifier(
        RedisUsageChannel(client),
        enabled=settings.USAGE_NOTIFICATIONS_ENABLED,
    )


def get_service(
    session: AsyncSession = Depends(get_db),
    notifier: UsageNotifier = Depends(get_usage_notifier),
) -> UsageTrackingService:
    """Dependency to get usage tracking service."""
    return UsageTrackingService(session, notifier=notifier)


def _raise_http(e: UsageServiceError) -> None:
    if isinstance(e, UsageValidationError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    if isinstance(e, UsagePersistenceError):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Usage tracking failed",
    )


def _summary(snapshot: UsageSnapshot) -> UsageSummaryResponse:
    period = UsagePeriodResponse.model_validate(snapshot.period)
    return UsageSummaryResponse(
        **period.model_dump(),
        limits=TierLimitsResponse.model_validate(snapshot.limits.to_dict()),
        warnings=[UsageWarningResponse.from_warning(w) for w in snapshot.warnings],
        perks=[PerkStatusResponse.from_perk(p) for p in snapshot.perks],
        state=snapshot.state,
    )


# ============================================
# Tracking Endpoints
# ============================================

@router.post(
    "/track-usage",
    response_model=Envelope[UsagePeriodResponse],
    summary="Track a completed service",
)
async def track_usage(
    data: TrackUsageRequest,
    service: UsageTrackingService = Depends(get_service),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    """Count one completed service against the current period.

    The usage update is published before responding, which can add up to
    `USAGE_NOTIFY_TIMEOUT_SECONDS` when Redis is slow.
    """
    try:
        period = await service.track_service_usage(
            user_id, data.service_type, data.subscription_tier
        )
        return Envelope(data=UsagePeriodResponse.model_validate(period))
    except UsageServiceError as e:
        _raise_http(e)


@router.post(
    "/track-discount",
    response_model=Envelope[UsagePeriodResponse],
    summary="Track a discount applied to an invoice",
)
async def track_discount(
    data: TrackDiscountRequest,
    service: UsageTrackingService = Depends(get_service),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    """Add a discount to this period's savings, capped at the tier limit.

    Like `/track-usage`, may wait up to `USAGE_NOTIFY_TIMEOUT_SECONDS` on
    the usage update publish.
    """
    try:
        period = await service.track_discount_usage(
            user_id, data.discount_amount, data.subscription_tier
        )
        return Envelope(data=UsagePeriodResponse.model_validate(period))
    except UsageServiceError as e:
        _raise_http(e)


# ============================================
# Read Endpoints
# ============================================

@router.get(
    "/usage",
    response_model=Envelope[UsageSummaryResponse],
    summary="Get current usage",
)
async def get_usage(
    tier: Optional[str] = Query(None, description="Tier to evaluate against"),
    service: UsageTrackingService = Depends(get_service),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    """Current period counters with limits, warnings and perks."""
    try:
        snapshot = await service.get_usage(user_id, tier)
        return Envelope(data=_summary(snapshot))
    except UsageServiceError as e:
        _raise_http(e)


@router.get(
    "/usage/history",
    response_model=Envelope[list[UsagePeriodResponse]],
    summary="Get past usage periods",
)
async def get_usage_history(
    limit: int = Query(12, description="Maximum number of periods"),
    service: UsageTrackingService = Depends(get_service),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    try:
        periods = await service.get_history(user_id, limit=limit)
        return Envelope(data=[UsagePeriodResponse.model_validate(p) for p in periods])
    except UsageServiceError as e:
        _raise_http(e)


@router.get(
    "/usage/quota/{category}",
    response_model=Envelope[QuotaCheckResponse],
    summary="Check remaining quota for a category",
)
async def check_quota(
    category: str,
    tier: Optional[str] = Query(None),
    amount: float = Query(1.0, description="Amount about to be consumed"),
    service: UsageTrackingService = Depends(get_service),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    try:
        check = await service.check_quota(user_id, category, tier=tier, amount=amount)
        return Envelope(data=QuotaCheckResponse.from_check(check))
    except UsageServiceError as e:
        _raise_http(e)


# ============================================
# Reset Endpoint
# ============================================

@router.post(
    "/reset-usage",
    response_model=Envelope[UsagePeriodResponse],
    summary="Reset usage for the current period",
)
async def reset_usage(
    service: UsageTrackingService = Depends(get_service),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    """Zero the current period's counters.

    A user who never tracked usage has nothing to reset; that is a success.
    """
    try:
        period = await service.reset_usage_for_period(user_id)
        return Envelope(data=UsagePeriodResponse.model_validate(period))
    except UsagePeriodNotFoundError:
        return Envelope(message="No usage to reset")
    except UsageServiceError as e:
        _raise_http(e)

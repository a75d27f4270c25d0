"""Pydantic schemas for the usage API.

Request and response bodies use camelCase keys; Python attributes stay
snake_case.
"""

import uuid
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from homecare.modules.usage.models import ResourceCategory
from homecare.modules.usage.periods import PeriodState
from homecare.modules.usage.thresholds import PerkStatus, QuotaCheck, UsageWarning

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base schema serialising to camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# ==================== Requests ====================

# Field values are parsed by the service; a missing or malformed value
# raises UsageValidationError (400).

class TrackUsageRequest(CamelModel):
    """A completed service reported by the booking flow."""
    service_type: Optional[Any] = Field(None, description="regular_service, priority_booking or emergency_service")
    subscription_tier: Optional[Any] = Field(None, description="STARTER, HOMECARE or PRIORITY")


class TrackDiscountRequest(CamelModel):
    """A discount applied to a customer's invoice."""
    discount_amount: Optional[Any] = Field(None, description="Discount amount in dollars")
    subscription_tier: Optional[Any] = Field(None, description="STARTER, HOMECARE or PRIORITY")


# ==================== Responses ====================

class UsagePeriodResponse(CamelModel):
    """Counters for one billing period."""
    id: Optional[uuid.UUID] = None
    user_id: uuid.UUID
    tier: str
    period_start: datetime
    period_end: datetime
    services_used: int
    discounts_saved: float
    discounts_overflow: float
    priority_bookings: int
    emergency_services: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TierLimitsResponse(CamelModel):
    """Per-period caps; null means unlimited."""
    max_services_per_month: Optional[int]
    max_discount_amount: Optional[float]
    max_priority_bookings: Optional[int]
    max_emergency_services: Optional[int]


class UsageWarningResponse(CamelModel):
    type: str
    category: ResourceCategory
    severity: str
    current_usage: float
    limit: Optional[float]
    percentage: float
    message: str
    action_required: bool
    suggested_tier: Optional[str] = None

    @classmethod
    def from_warning(cls, warning: UsageWarning) -> "UsageWarningResponse":
        return cls.model_validate(warning.to_dict())


class PerkStatusResponse(CamelModel):
    perk_type: ResourceCategory
    available: bool
    usage_count: float
    limit: Optional[float]
    remaining: Optional[float]
    reset_date: datetime
    message: str

    @classmethod
    def from_perk(cls, perk: PerkStatus) -> "PerkStatusResponse":
        return cls.model_validate(perk.to_dict())


class UsageSummaryResponse(UsagePeriodResponse):
    """Current period plus everything derived from it."""
    limits: TierLimitsResponse
    warnings: list[UsageWarningResponse]
    perks: list[PerkStatusResponse]
    state: PeriodState


class QuotaCheckResponse(CamelModel):
    category: ResourceCategory
    allowed: bool
    current_usage: float
    limit: Optional[float]
    remaining: Optional[float]

    @classmethod
    def from_check(cls, check: QuotaCheck) -> "QuotaCheckResponse":
        return cls(
            category=check.category,
            allowed=check.allowed,
            current_usage=check.current_usage,
            limit=check.limit,
            remaining=check.remaining,
        )


class UsageStatsResponse(CamelModel):
    """Aggregate usage across all users for the current period."""
    total_users: int
    total_services: int
    total_savings: float
    average_services_per_user: float
    period_start: datetime


class Envelope(CamelModel, Generic[T]):
    """``{success, data}`` wrapper shared by every usage endpoint."""
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


def dump(model: BaseModel) -> dict[str, Any]:
    """JSON-ready camelCase dict, as published on the usage channel."""
    return model.model_dump(mode="json", by_alias=True)

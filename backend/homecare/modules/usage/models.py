"""Usage tracking models.

A ``UsagePeriod`` row holds one user's counters for one billing period.
Rows are never moved to a new period: rollover inserts a fresh row and the
old one stays as history.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Float, Integer, String, UniqueConstraint, Uuid, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from homecare.core.clock import utc_now
from homecare.core.database import Base


class SubscriptionTier(str, Enum):
    """Subscription plan tiers, lowest first."""
    STARTER = "STARTER"
    HOMECARE = "HOMECARE"
    PRIORITY = "PRIORITY"


class ResourceCategory(str, Enum):
    """Tier-bound resources, in canonical display order."""
    SERVICES = "services"
    BOOKINGS = "bookings"
    DISCOUNTS = "discounts"
    EMERGENCY = "emergency"


class ServiceType(str, Enum):
    """Kinds of completed services reported by the booking flow."""
    REGULAR = "regular_service"
    PRIORITY_BOOKING = "priority_booking"
    EMERGENCY = "emergency_service"


class UsagePeriod(Base):
    """Per-user usage counters for one billing period."""

    __tablename__ = "usage_periods"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False, index=True
    )

    # Tier most recently tracked against this period
    tier: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionTier.STARTER.value
    )

    # [period_start, period_end), naive UTC
    period_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    services_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discounts_saved: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    discounts_overflow: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    priority_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emergency_services: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "period_start", name="uq_usage_periods_user_period"),
        CheckConstraint(
            "services_used >= 0 AND discounts_saved >= 0 AND discounts_overflow >= 0 "
            "AND priority_bookings >= 0 AND emergency_services >= 0",
            name="ck_usage_periods_non_negative",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<UsagePeriod(user={self.user_id}, start={self.period_start:%Y-%m}, "
            f"services={self.services_used})>"
        )

    def usage_for(self, category: ResourceCategory) -> float:
        """Current counter value for a resource category."""
        match category:
            case ResourceCategory.SERVICES:
                return self.services_used
            case ResourceCategory.BOOKINGS:
                return self.priority_bookings
            case ResourceCategory.DISCOUNTS:
                return self.discounts_saved
            case ResourceCategory.EMERGENCY:
                return self.emergency_services

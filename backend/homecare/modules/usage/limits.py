"""Subscription tier limit table.

``None`` means unlimited everywhere in this module. ``0`` means the tier has
no access to the resource at all.
"""

from dataclasses import dataclass
from typing import Optional

from homecare.modules.usage.exceptions import UsageValidationError
from homecare.modules.usage.models import ResourceCategory, SubscriptionTier


@dataclass(frozen=True)
class TierLimits:
    """Per-period caps for one subscription tier."""
    max_services_per_month: Optional[int]
    max_discount_amount: Optional[float]
    max_priority_bookings: Optional[int]
    max_emergency_services: Optional[int]

    def limit_for(self, category: ResourceCategory) -> Optional[float]:
        match category:
            case ResourceCategory.SERVICES:
                return self.max_services_per_month
            case ResourceCategory.BOOKINGS:
                return self.max_priority_bookings
            case ResourceCategory.DISCOUNTS:
                return self.max_discount_amount
            case ResourceCategory.EMERGENCY:
                return self.max_emergency_services

    def to_dict(self) -> dict:
        return {
            "maxServicesPerMonth": self.max_services_per_month,
            "maxDiscountAmount": self.max_discount_amount,
            "maxPriorityBookings": self.max_priority_bookings,
            "maxEmergencyServices": self.max_emergency_services,
        }


STARTER_LIMITS = TierLimits(
    max_services_per_month=4,
    max_discount_amount=50.0,
    max_priority_bookings=2,
    max_emergency_services=0,
)

HOMECARE_LIMITS = TierLimits(
    max_services_per_month=8,
    max_discount_amount=100.0,
    max_priority_bookings=5,
    max_emergency_services=1,
)

PRIORITY_LIMITS = TierLimits(
    max_services_per_month=None,
    max_discount_amount=250.0,
    max_priority_bookings=10,
    max_emergency_services=None,
)

TIER_ORDER: tuple[SubscriptionTier, ...] = (
    SubscriptionTier.STARTER,
    SubscriptionTier.HOMECARE,
    SubscriptionTier.PRIORITY,
)


def get_tier_limits(tier: SubscriptionTier) -> TierLimits:
    """Get the limit table for a tier."""
    match tier:
        case SubscriptionTier.STARTER:
            return STARTER_LIMITS
        case SubscriptionTier.HOMECARE:
            return HOMECARE_LIMITS
        case SubscriptionTier.PRIORITY:
            return PRIORITY_LIMITS
    raise UsageValidationError(f"Unknown subscription tier: {tier!r}")


def parse_tier(value: "str | SubscriptionTier | None") -> SubscriptionTier:
    """Parse a tier name case-insensitively.

    Raises:
        UsageValidationError: If the name is not a known tier
    """
    if isinstance(value, SubscriptionTier):
        return value
    if not isinstance(value, str) or not value.strip():
        raise UsageValidationError("subscriptionTier is required")
    try:
        return SubscriptionTier(value.strip().upper())
    except ValueError:
        valid = ", ".join(t.value for t in SubscriptionTier)
        raise UsageValidationError(
            f"Invalid subscription tier '{value}'. Expected one of: {valid}"
        ) from None


def next_tier(tier: SubscriptionTier) -> Optional[SubscriptionTier]:
    """The tier immediately above ``tier``, or None for the top tier."""
    index = TIER_ORDER.index(tier)
    if index + 1 < len(TIER_ORDER):
        return TIER_ORDER[index + 1]
    return None


def is_unlimited(limit: Optional[float]) -> bool:
    return limit is None

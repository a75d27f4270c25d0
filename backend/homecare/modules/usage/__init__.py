"""Usage module.

Tracks per-period subscription usage, evaluates tier limits and publishes
usage updates.
"""

from homecare.modules.usage.router import router
from homecare.modules.usage.service import UsageTrackingService
from homecare.modules.usage.models import (
    UsagePeriod,
    SubscriptionTier,
    ResourceCategory,
    ServiceType,
)
from homecare.modules.usage.limits import TierLimits, get_tier_limits

__all__ = [
    "router",
    "UsageTrackingService",
    "UsagePeriod",
    "SubscriptionTier",
    "ResourceCategory",
    "ServiceType",
    "TierLimits",
    "get_tier_limits",
]

"""Usage threshold evaluation.

Turns a period's counters and a tier's limits into warnings, perk
availability and quota answers. Everything in this module is a pure
function of its arguments, so it is safe to call on every request.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol

from homecare.modules.usage.limits import get_tier_limits, next_tier
from homecare.modules.usage.models import ResourceCategory, SubscriptionTier


# Percent of a limit at which an APPROACHING_LIMIT warning is raised
WARNING_THRESHOLD_PERCENT = 80

CATEGORY_LABELS = {
    ResourceCategory.SERVICES: "service booking",
    ResourceCategory.BOOKINGS: "priority booking",
    ResourceCategory.DISCOUNTS: "discount savings",
    ResourceCategory.EMERGENCY: "emergency service",
}


class WarningKind(str, Enum):
    APPROACHING_LIMIT = "APPROACHING_LIMIT"
    LIMIT_REACHED = "LIMIT_REACHED"
    UPGRADE_SUGGESTED = "UPGRADE_SUGGESTED"


class WarningSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    EXCEEDED = "exceeded"


_SEVERITY_RANK = {
    WarningSeverity.EXCEEDED: 0,
    WarningSeverity.CRITICAL: 1,
    WarningSeverity.WARNING: 2,
}
_CATEGORY_RANK = {category: index for index, category in enumerate(ResourceCategory)}
_KIND_RANK = {kind: index for index, kind in enumerate(WarningKind)}


class UsageLike(Protocol):
    def usage_for(self, category: ResourceCategory) -> float: ...


@dataclass(frozen=True)
class UsageCounters:
    """Plain counters, detached from storage."""
    services_used: int = 0
    discounts_saved: float = 0.0
    priority_bookings: int = 0
    emergency_services: int = 0

    def usage_for(self, category: ResourceCategory) -> float:
        match category:
            case ResourceCategory.SERVICES:
                return self.services_used
            case ResourceCategory.BOOKINGS:
                return self.priority_bookings
            case ResourceCategory.DISCOUNTS:
                return self.discounts_saved
            case ResourceCategory.EMERGENCY:
                return self.emergency_services


@dataclass(frozen=True)
class UsageWarning:
    """A warning about one resource category. Derived, never stored."""
    kind: WarningKind
    category: ResourceCategory
    severity: WarningSeverity
    current_usage: float
    limit: Optional[float]
    percentage: float
    message: str
    action_required: bool
    suggested_tier: Optional[SubscriptionTier] = None

    def sort_key(self) -> tuple[int, int, int]:
        return (
            _SEVERITY_RANK[self.severity],
            _CATEGORY_RANK[self.category],
            _KIND_RANK[self.kind],
        )

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "category": self.category.value,
            "severity": self.severity.value,
            "currentUsage": self.current_usage,
            "limit": self.limit,
            "percentage": self.percentage,
            "message": self.message,
            "actionRequired": self.action_required,
            "suggestedTier": self.suggested_tier.value if self.suggested_tier else None,
        }


@dataclass(frozen=True)
class PerkStatus:
    """Availability of one tier perk for the rest of the period."""
    category: ResourceCategory
    available: bool
    usage_count: float
    limit: Optional[float]
    remaining: Optional[float]
    reset_date: datetime
    message: str

    def to_dict(self) -> dict:
        return {
            "perkType": self.category.value,
            "available": self.available,
            "usageCount": self.usage_count,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetDate": self.reset_date.isoformat(),
            "message": self.message,
        }


@dataclass(frozen=True)
class QuotaCheck:
    category: ResourceCategory
    allowed: bool
    current_usage: float
    limit: Optional[float]
    remaining: Optional[float]


# ==================== Standalone calculations ====================

def calculate_usage_percent(used: float, limit: Optional[float]) -> float:
    """Calculate usage as a percentage of limit.

    Args:
        used: Amount used
        limit: Limit value (None for unlimited, 0 for no access)

    Returns:
        Usage percentage (0.0 for unlimited)
    """
    if limit is None:
        return 0.0
    if limit <= 0:
        return 100.0 if used > 0 else 0.0
    return round((used / limit) * 100, 2)


def classify_usage(used: float, limit: Optional[float]) -> Optional[WarningSeverity]:
    """Severity reached by ``used`` against ``limit``, or None if below 80%.

    An unlimited category never has a severity. A zero limit only becomes
    EXCEEDED once something was actually consumed.
    """
    if limit is None:
        return None
    if limit <= 0:
        return WarningSeverity.EXCEEDED if used > 0 else None
    if used > limit:
        return WarningSeverity.EXCEEDED
    if used == limit:
        return WarningSeverity.CRITICAL
    # Integer percent comparison sidesteps used/limit rounding at the boundary
    if used * 100 >= limit * WARNING_THRESHOLD_PERCENT:
        return WarningSeverity.WARNING
    return None


def suggest_upgrade(
    tier: SubscriptionTier,
    category: ResourceCategory,
    used: float,
) -> Optional[SubscriptionTier]:
    """The next tier up, if its limit for ``category`` covers ``used``."""
    candidate = next_tier(tier)
    if candidate is None:
        return None
    candidate_limit = get_tier_limits(candidate).limit_for(category)
    if candidate_limit is None or used <= candidate_limit:
        return candidate
    return None


def _format_amount(category: ResourceCategory, value: Optional[float]) -> str:
    if value is None:
        return "unlimited"
    if category == ResourceCategory.DISCOUNTS:
        return f"${value:,.2f}"
    return f"{int(value)}"


def _limit_reached_message(
    category: ResourceCategory,
    tier: SubscriptionTier,
    used: float,
    limit: float,
) -> str:
    label = CATEGORY_LABELS[category]
    if limit <= 0:
        return f"{label.capitalize()}s are not included in your {tier.value} plan."
    if used > limit:
        return (
            f"You've exceeded your {label} limit of "
            f"{_format_amount(category, limit)} for this period "
            f"({_format_amount(category, used)} used)."
        )
    return (
        f"You've reached your {label} limit of "
        f"{_format_amount(category, limit)} for this period."
    )


def _upgrade_message(category: ResourceCategory, suggested: SubscriptionTier) -> str:
    new_limit = get_tier_limits(suggested).limit_for(category)
    label = CATEGORY_LABELS[category]
    if new_limit is None:
        return f"Upgrading to {suggested.value} gives you unlimited {label}s."
    return (
        f"Upgrading to {suggested.value} raises your {label} limit to "
        f"{_format_amount(category, new_limit)} per period."
    )


def evaluate_category(
    usage: UsageLike,
    tier: SubscriptionTier,
    category: ResourceCategory,
) -> list[UsageWarning]:
    """Warnings for a single category, unsorted."""
    limit = get_tier_limits(tier).limit_for(category)
    used = usage.usage_for(category)
    severity = classify_usage(used, limit)
    if severity is None:
        return []

    percentage = calculate_usage_percent(used, limit)

    if severity == WarningSeverity.WARNING:
        return [
            UsageWarning(
                kind=WarningKind.APPROACHING_LIMIT,
                category=category,
                severity=severity,
                current_usage=used,
                limit=limit,
                percentage=percentage,
                message=(
                    f"You're approaching your {CATEGORY_LABELS[category]} limit "
                    f"({_format_amount(category, used)}/{_format_amount(category, limit)})."
                ),
                action_required=False,
            )
        ]

    suggested = suggest_upgrade(tier, category, used)
    warnings = [
        UsageWarning(
            kind=WarningKind.LIMIT_REACHED,
            category=category,
            severity=severity,
            current_usage=used,
            limit=limit,
            percentage=percentage,
            message=_limit_reached_message(category, tier, used, limit),
            action_required=True,
            suggested_tier=suggested,
        )
    ]
    if suggested is not None:
        warnings.append(
            UsageWarning(
                kind=WarningKind.UPGRADE_SUGGESTED,
                category=category,
                severity=severity,
                current_usage=used,
                limit=limit,
                percentage=percentage,
                message=_upgrade_message(category, suggested),
                action_required=False,
                suggested_tier=suggested,
            )
        )
    return warnings


def check_usage_warnings(
    usage: UsageLike,
    tier: SubscriptionTier,
) -> list[UsageWarning]:
    """Compute all warnings for a period under a tier.

    Args:
        usage: Current counters
        tier: Tier whose limits apply

    Returns:
        Warnings ordered by severity (exceeded, critical, warning), then by
        category in canonical order, then LIMIT_REACHED before
        UPGRADE_SUGGESTED.
    """
    warnings: list[UsageWarning] = []
    for category in ResourceCategory:
        warnings.extend(evaluate_category(usage, tier, category))
    return sorted(warnings, key=UsageWarning.sort_key)


def _perk_message(
    category: ResourceCategory,
    tier: SubscriptionTier,
    used: float,
    limit: Optional[float],
) -> str:
    label = CATEGORY_LABELS[category]
    if limit is None:
        return f"Unlimited {label}s on your {tier.value} plan"
    if limit <= 0:
        return f"{label.capitalize()}s are not included in your plan"
    if used >= limit:
        return f"{label.capitalize()} limit reached for this period"
    remaining = limit - used
    if category == ResourceCategory.DISCOUNTS:
        return f"{_format_amount(category, remaining)} in discounts remaining"
    return f"{_format_amount(category, remaining)} {label}s remaining"


def get_perk_status(
    usage: UsageLike,
    tier: SubscriptionTier,
    reset_date: datetime,
) -> list[PerkStatus]:
    """Availability of every perk for the remainder of the period.

    Args:
        usage: Current counters
        tier: Tier whose limits apply
        reset_date: When the counters next reset (the period end)

    Returns:
        One PerkStatus per category in canonical order
    """
    limits = get_tier_limits(tier)
    perks = []
    for category in ResourceCategory:
        limit = limits.limit_for(category)
        used = usage.usage_for(category)
        perks.append(
            PerkStatus(
                category=category,
                available=limit is None or used < limit,
                usage_count=used,
                limit=limit,
                remaining=None if limit is None else max(0, limit - used),
                reset_date=reset_date,
                message=_perk_message(category, tier, used, limit),
            )
        )
    return perks


def check_quota(
    usage: UsageLike,
    tier: SubscriptionTier,
    category: ResourceCategory,
    requested: float = 1.0,
) -> QuotaCheck:
    """Check whether ``requested`` more units fit under the tier's limit.

    Args:
        usage: Current counters
        tier: Tier whose limits apply
        category: Resource to check
        requested: Amount about to be consumed

    Returns:
        QuotaCheck; ``remaining`` is None for unlimited categories
    """
    limit = get_tier_limits(tier).limit_for(category)
    used = usage.usage_for(category)
    if limit is None:
        return QuotaCheck(category, True, used, None, None)
    return QuotaCheck(
        category=category,
        allowed=used + requested <= limit,
        current_usage=used,
        limit=limit,
        remaining=max(0, limit - used),
    )

"""Tests for the subscription tier limit table."""

import pytest

from homecare.modules.usage.exceptions import UsageValidationError
from homecare.modules.usage.limits import (
    TIER_ORDER,
    get_tier_limits,
    is_unlimited,
    next_tier,
    parse_tier,
)
from homecare.modules.usage.models import ResourceCategory, SubscriptionTier


class TestTierLimits:

    def test_starter_limits(self) -> None:
        limits = get_tier_limits(SubscriptionTier.STARTER)

        assert limits.max_services_per_month == 4
        assert limits.max_discount_amount == 50.0
        assert limits.max_priority_bookings == 2
        assert limits.max_emergency_services == 0

    def test_homecare_limits(self) -> None:
        limits = get_tier_limits(SubscriptionTier.HOMECARE)

        assert limits.max_services_per_month == 8
        assert limits.max_discount_amount == 100.0

    def test_priority_has_unlimited_services(self) -> None:
        limits = get_tier_limits(SubscriptionTier.PRIORITY)

        assert is_unlimited(limits.limit_for(ResourceCategory.SERVICES))
        assert is_unlimited(limits.limit_for(ResourceCategory.EMERGENCY))
        assert not is_unlimited(limits.limit_for(ResourceCategory.DISCOUNTS))

    def test_zero_is_no_access_not_unlimited(self) -> None:
        assert not is_unlimited(get_tier_limits(SubscriptionTier.STARTER).max_emergency_services)

    def test_limits_never_decrease_with_tier(self) -> None:
        for lower, higher in zip(TIER_ORDER, TIER_ORDER[1:]):
            for category in ResourceCategory:
                low = get_tier_limits(lower).limit_for(category)
                high = get_tier_limits(higher).limit_for(category)
                assert low is not None
                assert high is None or high >= low, (
                    f"{higher.value} {category.value} limit {high} below {lower.value} {low}"
                )

    def test_to_dict_uses_camel_case_and_null_for_unlimited(self) -> None:
        data = get_tier_limits(SubscriptionTier.PRIORITY).to_dict()

        assert data["maxServicesPerMonth"] is None
        assert data["maxDiscountAmount"] == 250.0

    def test_unknown_tier_raises(self) -> None:
        with pytest.raises(UsageValidationError):
            get_tier_limits("GOLD")


class TestParseTier:

    @pytest.mark.parametrize("value,expected", [
        ("STARTER", SubscriptionTier.STARTER),
        ("homecare", SubscriptionTier.HOMECARE),
        (" Priority ", SubscriptionTier.PRIORITY),
        (SubscriptionTier.HOMECARE, SubscriptionTier.HOMECARE),
    ])
    def test_parse_is_case_insensitive(self, value, expected) -> None:
        assert parse_tier(value) == expected

    @pytest.mark.parametrize("value", ["GOLD", "", None, 3])
    def test_invalid_tier_is_validation_error(self, value) -> None:
        with pytest.raises(UsageValidationError):
            parse_tier(value)

    def test_next_tier(self) -> None:
        assert next_tier(SubscriptionTier.STARTER) == SubscriptionTier.HOMECARE
        assert next_tier(SubscriptionTier.HOMECARE) == SubscriptionTier.PRIORITY
        assert next_tier(SubscriptionTier.PRIORITY) is None

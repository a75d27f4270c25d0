"""Tests for the usage tracking service against an in-memory database."""

import math
import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from conftest import FailingChannel
from homecare.modules.usage.exceptions import (
    UsagePeriodNotFoundError,
    UsagePersistenceError,
    UsageValidationError,
)
from homecare.modules.usage.models import ResourceCategory, ServiceType, SubscriptionTier, UsagePeriod
from homecare.modules.usage.notifications import UsageNotifier
from homecare.modules.usage.periods import PeriodState
from homecare.modules.usage.repository import UsagePeriodRepository
from homecare.modules.usage.service import UsageTrackingService
from homecare.modules.usage.thresholds import WarningKind


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def service(session, notifier, clock) -> UsageTrackingService:
    return UsageTrackingService(session, notifier=notifier, clock=clock)


class TestTrackServiceUsage:

    @pytest.mark.asyncio
    async def test_first_event_creates_calendar_period(self, service, user_id) -> None:
        period = await service.track_service_usage(user_id, "regular_service", "STARTER")

        assert period.services_used == 1
        assert period.period_start == datetime(2026, 3, 1)
        assert period.period_end == datetime(2026, 4, 1)
        assert period.tier == SubscriptionTier.STARTER.value

    @pytest.mark.asyncio
    async def test_starter_fourth_service_reaches_limit(self, service, user_id) -> None:
        for _ in range(3):
            await service.track_service_usage(user_id, ServiceType.REGULAR, SubscriptionTier.STARTER)

        snapshot = await service.get_usage(user_id)
        assert snapshot.warnings == []

        await service.track_service_usage(user_id, ServiceType.REGULAR, SubscriptionTier.STARTER)
        snapshot = await service.get_usage(user_id)

        assert snapshot.period.services_used == 4
        kinds = [(w.kind, w.category) for w in snapshot.warnings]
        assert kinds == [
            (WarningKind.LIMIT_REACHED, ResourceCategory.SERVICES),
            (WarningKind.UPGRADE_SUGGESTED, ResourceCategory.SERVICES),
        ]
        assert snapshot.warnings[1].suggested_tier == SubscriptionTier.HOMECARE
        assert snapshot.state == PeriodState.WARNING

    @pytest.mark.asyncio
    async def test_service_type_bumps_category_counter(self, service, user_id) -> None:
        await service.track_service_usage(user_id, "priority_booking", "HOMECARE")
        period = await service.track_service_usage(user_id, "emergency_service", "HOMECARE")

        assert period.services_used == 2
        assert period.priority_bookings == 1
        assert period.emergency_services == 1

    @pytest.mark.asyncio
    async def test_unknown_service_type_rejected(self, service, user_id) -> None:
        with pytest.raises(UsageValidationError):
            await service.track_service_usage(user_id, "house_party", "STARTER")

    @pytest.mark.asyncio
    async def test_unknown_tier_rejected(self, service, user_id) -> None:
        with pytest.raises(UsageValidationError):
            await service.track_service_usage(user_id, "regular_service", "GOLD")

    @pytest.mark.asyncio
    async def test_rollover_after_period_end(self, service, session, clock, user_id) -> None:
        repo = UsagePeriodRepository(session)
        old = UsagePeriod(
            user_id=user_id,
            tier="STARTER",
            period_start=datetime(2026, 2, 1),
            period_end=clock.now - timedelta(days=1),
            services_used=4,
            discounts_saved=50.0,
            discounts_overflow=0.0,
            priority_bookings=2,
            emergency_services=0,
        )
        session.add(old)
        await session.commit()

        period = await service.track_service_usage(user_id, "regular_service", "STARTER")

        assert period.id != old.id
        assert period.services_used == 1
        assert period.discounts_saved == 0.0
        assert period.period_start >= old.period_end
        history = await repo.list_for_user(user_id)
        assert [p.services_used for p in history] == [1, 4]

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, service) -> None:
        first, second = uuid.uuid4(), uuid.uuid4()
        await service.track_service_usage(first, "regular_service", "STARTER")
        await service.track_service_usage(first, "regular_service", "STARTER")
        await service.track_service_usage(second, "regular_service", "STARTER")

        assert (await service.get_usage(first)).period.services_used == 2
        assert (await service.get_usage(second)).period.services_used == 1


class TestTrackDiscountUsage:

    @pytest.mark.asyncio
    async def test_homecare_discount_capped_at_100(self, service, user_id) -> None:
        await service.track_discount_usage(user_id, 80.0, "HOMECARE")
        period = await service.track_discount_usage(user_id, 40.0, "HOMECARE")

        assert period.discounts_saved == 100.0
        assert period.discounts_overflow == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_priority_discount_within_cap(self, service, user_id) -> None:
        period = await service.track_discount_usage(user_id, 120.5, "PRIORITY")

        assert period.discounts_saved == pytest.approx(120.5)
        assert period.discounts_overflow == 0.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [-1.0, math.nan, math.inf, "10"])
    async def test_invalid_amount_rejected(self, service, user_id, amount) -> None:
        with pytest.raises(UsageValidationError):
            await service.track_discount_usage(user_id, amount, "STARTER")

    @pytest.mark.asyncio
    async def test_zero_amount_is_accepted(self, service, user_id) -> None:
        period = await service.track_discount_usage(user_id, 0, "STARTER")

        assert period.discounts_saved == 0.0


class TestGetUsage:

    @pytest.mark.asyncio
    async def test_unknown_user_gets_empty_view_without_writing(self, service, session, user_id) -> None:
        snapshot = await service.get_usage(user_id)

        assert snapshot.period.services_used == 0
        assert snapshot.period.id is None
        assert snapshot.tier == SubscriptionTier.STARTER
        assert snapshot.state == PeriodState.EMPTY
        assert await UsagePeriodRepository(session).get_latest(user_id) is None

    @pytest.mark.asyncio
    async def test_requested_tier_overrides_stored_tier(self, service, user_id) -> None:
        for _ in range(4):
            await service.track_service_usage(user_id, "regular_service", "STARTER")

        snapshot = await service.get_usage(user_id, "priority")

        assert snapshot.tier == SubscriptionTier.PRIORITY
        assert snapshot.warnings == []
        assert snapshot.limits.max_services_per_month is None

    @pytest.mark.asyncio
    async def test_expired_period_reads_as_zero(self, service, clock, user_id) -> None:
        await service.track_service_usage(user_id, "regular_service", "HOMECARE")
        clock.advance(timedelta(days=40))

        snapshot = await service.get_usage(user_id)

        assert snapshot.period.services_used == 0
        assert snapshot.period.period_start == datetime(2026, 4, 1)
        assert snapshot.tier == SubscriptionTier.HOMECARE
        assert snapshot.period.tier == "HOMECARE"

    @pytest.mark.asyncio
    async def test_expired_period_quota_uses_stored_tier(self, service, clock, user_id) -> None:
        await service.track_service_usage(user_id, "emergency_service", "HOMECARE")
        clock.advance(timedelta(days=40))

        check = await service.check_quota(user_id, "emergency")

        assert check.allowed is True
        assert check.limit == 1
        assert check.remaining == 1

    @pytest.mark.asyncio
    async def test_check_quota(self, service, user_id) -> None:
        await service.track_discount_usage(user_id, 45.0, "STARTER")

        assert (await service.check_quota(user_id, "discounts", amount=5)).allowed is True
        check = await service.check_quota(user_id, "discounts", amount=6)
        assert check.allowed is False
        assert check.remaining == pytest.approx(5.0)

        with pytest.raises(UsageValidationError):
            await service.check_quota(user_id, "snacks")

    @pytest.mark.asyncio
    async def test_history_limit_validated(self, service, user_id) -> None:
        with pytest.raises(UsageValidationError):
            await service.get_history(user_id, limit=0)


class TestResetUsage:

    @pytest.mark.asyncio
    async def test_reset_then_read_is_zero(self, service, user_id) -> None:
        await service.track_service_usage(user_id, "priority_booking", "STARTER")
        await service.track_discount_usage(user_id, 30.0, "STARTER")

        await service.reset_usage_for_period(user_id)
        snapshot = await service.get_usage(user_id)

        for category in ResourceCategory:
            assert snapshot.period.usage_for(category) == 0
        assert snapshot.period.discounts_overflow == 0.0

    @pytest.mark.asyncio
    async def test_reset_expired_period_rotates(self, service, session, clock, user_id) -> None:
        first = await service.track_service_usage(user_id, "regular_service", "STARTER")
        clock.advance(timedelta(days=30))

        period = await service.reset_usage_for_period(user_id)

        assert period.id != first.id
        assert period.period_start == datetime(2026, 4, 1)
        stored_first = await UsagePeriodRepository(session).get_by_id(first.id)
        assert stored_first.services_used == 1

    @pytest.mark.asyncio
    async def test_reset_unknown_user(self, service, user_id) -> None:
        with pytest.raises(UsagePeriodNotFoundError):
            await service.reset_usage_for_period(user_id)


class TestNotificationsAndFailures:

    @pytest.mark.asyncio
    async def test_mutation_publishes_usage_update(self, service, channel, user_id) -> None:
        await service.track_service_usage(user_id, "regular_service", "STARTER")

        assert len(channel.messages) == 1
        published_user, payload = channel.messages[0]
        assert published_user == user_id
        assert payload["userId"] == str(user_id)
        assert payload["usage"]["servicesUsed"] == 1
        assert payload["limits"]["maxServicesPerMonth"] == 4
        assert {"warnings", "perks"} <= payload.keys()

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_tracking(self, session, clock, user_id) -> None:
        service = UsageTrackingService(session, notifier=UsageNotifier(FailingChannel()), clock=clock)

        period = await service.track_service_usage(user_id, "regular_service", "STARTER")

        assert period.services_used == 1

    @pytest.mark.asyncio
    async def test_storage_failure_is_persistence_error(self, service, user_id, monkeypatch) -> None:
        async def broken(*args, **kwargs):
            raise OperationalError("UPDATE usage_periods", {}, Exception("disk I/O error"))

        monkeypatch.setattr(service.period_repo, "increment_services", broken)

        with pytest.raises(UsagePersistenceError):
            await service.track_service_usage(user_id, "regular_service", "STARTER")

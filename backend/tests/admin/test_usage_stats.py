"""Tests for admin usage statistics and their cache."""

import uuid
from datetime import datetime

import pytest

from homecare.core.cache import TTLCache
from homecare.modules.admin.service import AdminUsageService
from homecare.modules.auth.jwt import create_access_token
from homecare.modules.usage.models import UsagePeriod
from homecare.modules.usage.service import UsageTrackingService


class FakeTime:
    def __init__(self):
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


def stored_period(user_id: uuid.UUID, start: datetime, end: datetime, services: int, saved: float) -> UsagePeriod:
    return UsagePeriod(
        user_id=user_id,
        tier="HOMECARE",
        period_start=start,
        period_end=end,
        services_used=services,
        discounts_saved=saved,
        discounts_overflow=0.0,
        priority_bookings=0,
        emergency_services=0,
    )


class TestAdminUsageService:

    @pytest.mark.asyncio
    async def test_aggregates_only_active_periods(self, session, clock) -> None:
        session.add_all([
            stored_period(uuid.uuid4(), datetime(2026, 3, 1), datetime(2026, 4, 1), 3, 20.0),
            stored_period(uuid.uuid4(), datetime(2026, 3, 1), datetime(2026, 4, 1), 5, 35.5),
            # Expired last month; excluded
            stored_period(uuid.uuid4(), datetime(2026, 2, 1), datetime(2026, 3, 1), 8, 100.0),
        ])
        await session.commit()
        service = AdminUsageService(session, cache=TTLCache(120, time_source=FakeTime()), clock=clock)

        stats = await service.get_usage_stats()

        assert stats.total_users == 2
        assert stats.total_services == 8
        assert stats.total_savings == pytest.approx(55.5)
        assert stats.average_services_per_user == 4.0
        assert stats.period_start == datetime(2026, 3, 1)

    @pytest.mark.asyncio
    async def test_empty_platform(self, session, clock) -> None:
        service = AdminUsageService(session, cache=TTLCache(120, time_source=FakeTime()), clock=clock)

        stats = await service.get_usage_stats()

        assert stats.total_users == 0
        assert stats.average_services_per_user == 0.0

    @pytest.mark.asyncio
    async def test_cached_until_ttl_elapses(self, session, clock) -> None:
        time = FakeTime()
        service = AdminUsageService(session, cache=TTLCache(120, time_source=time), clock=clock)
        tracker = UsageTrackingService(session, clock=clock)
        user_id = uuid.uuid4()

        await tracker.track_service_usage(user_id, "regular_service", "STARTER")
        first = await service.get_usage_stats()

        await tracker.track_service_usage(user_id, "regular_service", "STARTER")
        time.value = 119.0
        assert (await service.get_usage_stats()).total_services == first.total_services == 1

        time.value = 120.0
        assert (await service.get_usage_stats()).total_services == 2

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self, session, clock) -> None:
        service = AdminUsageService(session, cache=TTLCache(120, time_source=FakeTime()), clock=clock)
        tracker = UsageTrackingService(session, clock=clock)

        await service.get_usage_stats()
        await tracker.track_service_usage(uuid.uuid4(), "regular_service", "STARTER")

        assert (await service.get_usage_stats(refresh=True)).total_services == 1


class TestAdminUsageEndpoint:

    @pytest.mark.asyncio
    async def test_customer_token_is_403(self, client) -> None:
        token = create_access_token(uuid.uuid4())

        response = await client.get(
            "/api/admin/usage/stats",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_gets_camel_case_stats(self, client) -> None:
        token = create_access_token(uuid.uuid4(), role="admin")

        response = await client.get(
            "/api/admin/usage/stats",
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalUsers"] == 0
        assert {"totalServices", "totalSavings", "averageServicesPerUser", "periodStart"} <= data.keys()

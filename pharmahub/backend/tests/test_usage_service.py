"""
Tests for plan quota accounting against the tenant database
"""
from datetime import timedelta

import pytest

from app.core.constants import UsageDimension, UsageLevel, is_unlimited
from app.core.exceptions import QuotaExceeded
from app.db.base import utcnow
from app.db.models.tenant_data import Invoice, Product, StoredFile, TenantUser
from app.services.subscription_service import SubscriptionService
from app.services.usage_service import UsageService, usage_level

GB = 1024 ** 3


async def add_users(registry, context, count: int, active: bool = True):
    async with registry.tenant_session(context) as tenant_db:
        for i in range(count):
            tenant_db.add(TenantUser(email=f"user{i}-{active}@farmacia.com.br", is_active=active))
        await tenant_db.commit()


class TestThresholds:

    @pytest.mark.parametrize(
        "percentage,level",
        [(0, UsageLevel.OK), (79.9, UsageLevel.OK), (80, UsageLevel.WARNING), (99.9, UsageLevel.WARNING),
         (100, UsageLevel.CRITICAL), (150, UsageLevel.CRITICAL)],
    )
    def test_usage_level(self, percentage, level):
        assert usage_level(percentage) == level

    @pytest.mark.parametrize("limit,unlimited", [(999999, True), (1000000, True), (-1, True), (0, False), (3, False)])
    def test_unlimited_sentinel(self, limit, unlimited):
        assert is_unlimited(limit) is unlimited


@pytest.mark.asyncio
class TestCheckLimit:

    @pytest.fixture
    def service(self, db_session, registry):
        return UsageService(db_session, registry)

    async def test_seat_limit_reached(self, service, registry, tenant, tenant_context):
        """
        Test: Starter plan allows 3 users and 3 are active

        Expected:
        - Adding a fourth is denied with current/limit reported
        """
        await add_users(registry, tenant_context, 3)

        result = await service.check_limit(tenant.id, UsageDimension.USERS, context=tenant_context)

        assert result.allowed is False
        assert result.current == 3
        assert result.limit == 3
        assert "Upgrade your plan" in result.message

    async def test_seat_available(self, service, registry, tenant, tenant_context):
        await add_users(registry, tenant_context, 2)
        await add_users(registry, tenant_context, 4, active=False)

        result = await service.check_limit(tenant.id, UsageDimension.USERS, context=tenant_context)

        assert result.allowed is True
        assert result.current == 2

    async def test_resolves_context_when_not_given(self, service, registry, tenant, tenant_context):
        await add_users(registry, tenant_context, 3)

        result = await service.check_limit(tenant.id, UsageDimension.USERS)

        assert result.allowed is False

    async def test_unlimited_plan_skips_counting(self, service, db_session, plans, registry, tenant, tenant_context):
        plans["starter"].max_users = 999999
        await db_session.commit()
        await add_users(registry, tenant_context, 10)

        result = await service.check_limit(tenant.id, UsageDimension.USERS, context=tenant_context)

        assert result.allowed is True
        assert result.current is None

    async def test_fails_closed_when_expired(self, service, db_session, tenant, tenant_context):
        subscription = await SubscriptionService(db_session).get(tenant.id)
        subscription.end_date = utcnow() - timedelta(days=1)
        await db_session.commit()

        result = await service.check_limit(tenant.id, UsageDimension.PRODUCTS, context=tenant_context)

        assert result.allowed is False
        assert "expired" in result.message

    async def test_fails_closed_when_suspended(self, service, db_session, tenant, tenant_context):
        await SubscriptionService(db_session).suspend(tenant.id)

        result = await service.check_limit(tenant.id, UsageDimension.USERS, context=tenant_context)

        assert result.allowed is False

    async def test_storage_checks_incoming_size(self, service, registry, tenant, tenant_context):
        async with registry.tenant_session(tenant_context) as tenant_db:
            tenant_db.add(StoredFile(path="/nfe/2026/01.xml", size_bytes=4 * GB))
            await tenant_db.commit()

        fits = await service.check_limit(tenant.id, UsageDimension.STORAGE, additional=0.5, context=tenant_context)
        too_big = await service.check_limit(tenant.id, UsageDimension.STORAGE, additional=2, context=tenant_context)

        assert fits.allowed is True
        assert too_big.allowed is False
        assert too_big.current == 4

    async def test_storage_exactly_full_is_denied(self, service, db_session, registry, tenant, tenant_context):
        """
        Test: Starter plan allows 5 GB and 5 GB are stored

        Expected:
        - Dashboard reports the dimension as critical
        - check_limit with no incoming size is denied as well
        """
        async with registry.tenant_session(tenant_context) as tenant_db:
            tenant_db.add(StoredFile(path="/nfe/2026/full.zip", size_bytes=5 * GB))
            await tenant_db.commit()

        dashboard = await service.compute_usage(tenant.id, context=tenant_context)
        storage = next(m for m in dashboard.metrics if m.dimension == UsageDimension.STORAGE)
        result = await service.check_limit(tenant.id, UsageDimension.STORAGE, context=tenant_context)

        assert storage.status == UsageLevel.CRITICAL
        assert result.allowed is False
        assert result.current == 5

    async def test_enforce_limit_raises_quota_exceeded(self, service, registry, tenant, tenant_context):
        await add_users(registry, tenant_context, 3)

        with pytest.raises(QuotaExceeded) as exc_info:
            await service.enforce_limit(tenant.id, UsageDimension.USERS, context=tenant_context)

        assert exc_info.value.status_code == 402
        assert exc_info.value.to_dict()["dimension"] == "users"
        assert exc_info.value.to_dict()["limit"] == 3


@pytest.mark.asyncio
class TestUsageDashboard:

    async def test_dashboard_levels(self, db_session, plans, registry, tenant, tenant_context):
        plans["starter"].max_products = 10
        await db_session.commit()
        await add_users(registry, tenant_context, 3)
        async with registry.tenant_session(tenant_context) as tenant_db:
            for i in range(8):
                tenant_db.add(Product(sku=f"SKU-{i}", name=f"Dipirona {i}"))
            tenant_db.add(Invoice(number="NF-1", total=120))
            tenant_db.add(StoredFile(path="/xml/a.xml", size_bytes=GB // 2))
            await tenant_db.commit()

        dashboard = await UsageService(db_session, registry).compute_usage(tenant.id, context=tenant_context)
        metrics = {m.dimension: m for m in dashboard.metrics}

        assert metrics[UsageDimension.USERS].percentage == 100.0
        assert metrics[UsageDimension.USERS].status == UsageLevel.CRITICAL
        assert metrics[UsageDimension.PRODUCTS].percentage == 80.0
        assert metrics[UsageDimension.PRODUCTS].status == UsageLevel.WARNING
        assert metrics[UsageDimension.TRANSACTIONS].current == 1
        assert metrics[UsageDimension.TRANSACTIONS].status == UsageLevel.OK
        assert metrics[UsageDimension.STORAGE].current == 0.5
        assert metrics[UsageDimension.STORAGE].unit == "GB"
        assert dashboard.usage["users"] == 3
        assert dashboard.limits["max_users"] == 3

    async def test_unlimited_dimension_reports_zero_percent(self, db_session, plans, registry, tenant, tenant_context):
        plans["starter"].max_users = -1
        await db_session.commit()

        dashboard = await UsageService(db_session, registry).compute_usage(tenant.id, context=tenant_context)
        users = next(m for m in dashboard.metrics if m.dimension == UsageDimension.USERS)

        assert users.limit == "unlimited"
        assert users.percentage == 0

"""
Tests for the subscription lifecycle
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from app.core.constants import BillingCycle, SubscriptionStatus
from app.core.exceptions import ConflictError, InvalidStateError, SubscriptionInactive
from app.db.base import utcnow
from app.db.models.audit_log import AuditLog
from app.db.models.tenant import Tenant
from app.services.subscription_service import SubscriptionService, add_months, effective_status


def fixed_clock(moment: datetime):
    return lambda: moment


class TestCalendarHelpers:

    @pytest.mark.parametrize(
        "start,months,expected",
        [
            (datetime(2026, 1, 15), 1, datetime(2026, 2, 15)),
            (datetime(2026, 1, 31), 1, datetime(2026, 2, 28)),
            (datetime(2028, 1, 31), 1, datetime(2028, 2, 29)),
            (datetime(2026, 11, 30), 3, datetime(2027, 2, 28)),
            (datetime(2026, 3, 10, 8, 30), 12, datetime(2027, 3, 10, 8, 30)),
        ],
    )
    def test_add_months(self, start, months, expected):
        assert add_months(start, months) == expected


@pytest.mark.asyncio
class TestSubscriptionLifecycle:

    @pytest.fixture
    async def subscription(self, db_session, tenant):
        return await SubscriptionService(db_session).get(tenant.id)

    async def test_provisioned_tenant_starts_on_trial(self, subscription, tenant):
        assert subscription.status == SubscriptionStatus.TRIAL.value
        assert subscription.trial_end_date == subscription.end_date
        assert (subscription.end_date - subscription.start_date) == timedelta(days=14)
        assert tenant.subscription_status == SubscriptionStatus.TRIAL.value
        assert tenant.plan == "starter"

    async def test_second_subscription_conflicts(self, db_session, tenant, plans):
        with pytest.raises(ConflictError):
            await SubscriptionService(db_session).create_subscription(tenant.id, plans["starter"].id)

    async def test_passive_expiry(self, db_session, tenant, subscription):
        """
        Test: Trial whose end date passed before the sweep ran

        Expected:
        - Reported as expired before anything is written
        - require_active raises LICENSE_EXPIRED and persists the expiry
        """
        later = subscription.end_date + timedelta(seconds=1)
        service = SubscriptionService(db_session, clock=fixed_clock(later))

        assert effective_status(subscription, later) == SubscriptionStatus.EXPIRED
        assert subscription.status == SubscriptionStatus.TRIAL.value

        with pytest.raises(SubscriptionInactive) as exc_info:
            await service.require_active(tenant.id)
        assert exc_info.value.code == "LICENSE_EXPIRED"
        assert exc_info.value.status_code == 403
        assert subscription.status == SubscriptionStatus.EXPIRED.value
        assert tenant.subscription_status == SubscriptionStatus.EXPIRED.value

    async def test_check_validity_persists_expired(self, db_session, tenant, subscription):
        later = subscription.end_date + timedelta(days=1)

        result = await SubscriptionService(db_session, clock=fixed_clock(later)).check_validity(tenant.id)

        assert result.is_valid is False
        assert result.status == SubscriptionStatus.EXPIRED
        assert subscription.status == SubscriptionStatus.EXPIRED.value

    async def test_renew_extends_from_end_date_when_in_future(self, db_session, tenant, subscription):
        end = subscription.end_date

        renewed = await SubscriptionService(db_session).renew(tenant.id, months=1)

        assert renewed.status == SubscriptionStatus.ACTIVE.value
        assert renewed.end_date == add_months(end, 1)

    async def test_renew_extends_from_now_when_expired(self, db_session, tenant, subscription):
        now = subscription.end_date + timedelta(days=10)

        renewed = await SubscriptionService(db_session, clock=fixed_clock(now)).renew(tenant.id, months=12)

        assert renewed.end_date == add_months(now, 12)
        assert renewed.status == SubscriptionStatus.ACTIVE.value

    async def test_renew_requires_at_least_one_month(self, db_session, tenant, subscription):
        with pytest.raises(InvalidStateError):
            await SubscriptionService(db_session).renew(tenant.id, months=0)

    async def test_cancelled_subscription_cannot_be_renewed_or_suspended(self, db_session, tenant, subscription):
        service = SubscriptionService(db_session)
        await service.cancel(tenant.id, reason="Closing the store")

        assert subscription.status == SubscriptionStatus.CANCELLED.value
        assert subscription.auto_renew is False
        assert subscription.cancelled_at is not None

        with pytest.raises(InvalidStateError):
            await service.renew(tenant.id)
        with pytest.raises(InvalidStateError):
            await service.suspend(tenant.id)
        with pytest.raises(InvalidStateError):
            await service.extend_for_payment(subscription, BillingCycle.MONTHLY.value)

    async def test_suspend_then_reactivate(self, db_session, tenant, subscription):
        service = SubscriptionService(db_session)

        await service.suspend(tenant.id, reason="Chargeback")
        assert subscription.status == SubscriptionStatus.SUSPENDED.value
        with pytest.raises(SubscriptionInactive) as exc_info:
            await service.require_active(tenant.id)
        assert exc_info.value.code == "LICENSE_SUSPENDED"

        await service.reactivate(tenant.id)
        assert subscription.status == SubscriptionStatus.ACTIVE.value
        assert subscription.suspended_reason is None

    async def test_reactivate_past_end_date_lands_on_expired(self, db_session, tenant, subscription):
        await SubscriptionService(db_session).suspend(tenant.id)
        later = subscription.end_date + timedelta(days=2)

        await SubscriptionService(db_session, clock=fixed_clock(later)).reactivate(tenant.id)

        assert subscription.status == SubscriptionStatus.EXPIRED.value

    async def test_reactivate_requires_suspension(self, db_session, tenant, subscription):
        with pytest.raises(InvalidStateError):
            await SubscriptionService(db_session).reactivate(tenant.id)

    async def test_suspension_leaves_tenant_operational_status(self, db_session, tenant, subscription):
        await SubscriptionService(db_session).suspend(tenant.id)

        refreshed = await db_session.get(Tenant, tenant.id)
        assert refreshed.status == "active"
        assert refreshed.subscription_status == SubscriptionStatus.SUSPENDED.value

    async def test_change_plan_updates_tenant_cache(self, db_session, tenant, subscription, plans):
        end = subscription.end_date

        await SubscriptionService(db_session).change_plan(tenant.id, plans["professional"].id)

        assert subscription.plan_id == plans["professional"].id
        assert subscription.end_date == end
        assert tenant.plan == "professional"
        assert "NFE" in tenant.modules_enabled

    async def test_transitions_are_audited(self, db_session, tenant, subscription):
        service = SubscriptionService(db_session)
        await service.renew(tenant.id)
        await service.cancel(tenant.id)

        result = await db_session.execute(
            select(AuditLog.action).where(AuditLog.resource_type == "subscription")
        )
        actions = sorted(result.scalars().all())
        assert actions == ["subscription.cancel", "subscription.create", "subscription.renew"]

    async def test_subscription_info(self, db_session, tenant, subscription):
        now = subscription.end_date - timedelta(days=5, hours=2)

        info = await SubscriptionService(db_session, clock=fixed_clock(now)).get_subscription_info(tenant.id)

        assert info.days_until_expiration == 6
        assert info.is_expiring_soon is True
        assert info.is_expired is False
        assert info.plan.name == "starter"

    async def test_subscription_info_when_expired(self, db_session, tenant, subscription):
        now = subscription.end_date + timedelta(days=3)

        info = await SubscriptionService(db_session, clock=fixed_clock(now)).get_subscription_info(tenant.id)

        assert info.is_expired is True
        assert info.is_expiring_soon is False
        assert info.status == SubscriptionStatus.EXPIRED

    async def test_get_expiring_urgency(self, db_session, tenant, subscription):
        now = subscription.end_date - timedelta(hours=12)

        expiring = await SubscriptionService(db_session, clock=fixed_clock(now)).get_expiring(days_ahead=7)

        assert [(e.subscription.tenant_id, e.days_left, e.urgency) for e in expiring] == [
            (tenant.id, 1, "critical")
        ]

    async def test_expire_overdue_sweep(self, db_session, tenant, subscription):
        service = SubscriptionService(db_session, clock=fixed_clock(subscription.end_date + timedelta(hours=1)))

        assert await service.expire_overdue() == 1
        assert subscription.status == SubscriptionStatus.EXPIRED.value
        assert await service.expire_overdue() == 0

    async def test_trial_end_default_is_real_time(self, subscription):
        assert subscription.end_date > utcnow()

# backend/app/services/subscription_service.py
"""
Subscription lifecycle.

States: trial, active, expired, suspended, cancelled. ``end_date`` is the only
authority for time-based expiry: a trial/active subscription whose end date
has passed is reported as expired even before the daily sweep persists it.
"""
import calendar
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import (
    BILLING_CYCLE_MONTHS,
    GATING_STATUSES,
    BillingCycle,
    SubscriptionStatus,
)
from app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    PlanNotFound,
    SubscriptionInactive,
    SubscriptionNotFound,
    TenantNotFound,
)
from app.core.logging import get_logger
from app.db.base import utcnow
from app.db.models.plan import Plan
from app.db.models.subscription import Subscription
from app.db.repositories.audit_log_repository import AuditLogRepository
from app.db.repositories.plan_repository import PlanRepository
from app.db.repositories.subscription_repository import SubscriptionRepository
from app.db.repositories.tenant_repository import TenantRepository

logger = get_logger("subscription")


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of the month"""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def cycle_months(billing_cycle: Optional[str]) -> int:
    return BILLING_CYCLE_MONTHS[BillingCycle(billing_cycle or BillingCycle.MONTHLY.value)]


def effective_status(subscription: Subscription, now: Optional[datetime] = None) -> SubscriptionStatus:
    """Persisted status corrected for a silently passed end date"""
    status = SubscriptionStatus(subscription.status)
    now = now or utcnow()
    if status in GATING_STATUSES and subscription.end_date < now:
        return SubscriptionStatus.EXPIRED
    return status


@dataclass
class ValidityResult:
    is_valid: bool
    status: Optional[SubscriptionStatus]
    reason: Optional[str] = None
    subscription: Optional[Subscription] = None


@dataclass
class SubscriptionInfo:
    subscription: Subscription
    plan: Plan
    status: SubscriptionStatus
    days_until_expiration: int
    is_expiring_soon: bool
    is_expired: bool


@dataclass
class ExpiringSubscription:
    subscription: Subscription
    days_left: int
    urgency: str


class SubscriptionService:
    """Service for subscription state transitions"""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock
        self.subscriptions = SubscriptionRepository(session)
        self.plans = PlanRepository(session)
        self.tenants = TenantRepository(session)
        self.audit = AuditLogRepository(session)

    async def get(self, tenant_id: str, for_update: bool = False) -> Subscription:
        subscription = await self.subscriptions.get_by_tenant(tenant_id, for_update=for_update)
        if subscription is None:
            raise SubscriptionNotFound(f"Subscription for tenant {tenant_id} not found")
        return subscription

    async def _active_plan(self, plan_id: str) -> Plan:
        plan = await self.plans.get(plan_id)
        if plan is None:
            raise PlanNotFound(f"Plan {plan_id} not found")
        if not plan.is_active:
            raise InvalidStateError(f"Plan {plan.name} is not active")
        return plan

    async def _sync_tenant_cache(self, subscription: Subscription, plan: Optional[Plan] = None) -> None:
        """Refresh the tenant's denormalized subscription fields"""
        tenant = await self.tenants.get_by_id(subscription.tenant_id)
        if tenant is None:
            return
        tenant.subscription_status = subscription.status
        tenant.subscription_end = subscription.end_date
        if plan is not None and tenant.plan != plan.name:
            tenant.plan = plan.name
            tenant.modules_enabled = list(plan.features or [])

    def _audit(self, subscription: Subscription, action: str, previous: Optional[str], **details) -> None:
        self.audit.record(
            action=f"subscription.{action}",
            tenant_id=subscription.tenant_id,
            resource_type="subscription",
            resource_id=subscription.id,
            details={
                "from": previous,
                "to": subscription.status,
                "end_date": subscription.end_date.isoformat(),
                **details,
            },
        )

    async def create_subscription(
        self,
        tenant_id: str,
        plan_id: str,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        trial: bool = True,
        auto_renew: bool = True,
        start_date: Optional[datetime] = None,
    ) -> Subscription:
        """One subscription per tenant; starts as a trial unless told otherwise"""
        if await self.tenants.get_by_id(tenant_id) is None:
            raise TenantNotFound(f"Tenant {tenant_id} not found")
        if await self.subscriptions.get_by_tenant(tenant_id) is not None:
            raise ConflictError("Tenant already has a subscription; renew it instead")

        plan = await self._active_plan(plan_id)
        start = start_date or self.clock()
        billing_cycle = BillingCycle(billing_cycle)

        if trial:
            end = start + timedelta(days=settings.DEFAULT_TRIAL_DAYS)
            status = SubscriptionStatus.TRIAL
        else:
            end = add_months(start, BILLING_CYCLE_MONTHS[billing_cycle])
            status = SubscriptionStatus.ACTIVE

        subscription = Subscription(
            tenant_id=tenant_id,
            plan=plan,
            start_date=start,
            end_date=end,
            status=status.value,
            billing_cycle=billing_cycle.value,
            auto_renew=auto_renew,
            trial_end_date=end if trial else None,
        )
        self.session.add(subscription)
        await self.session.flush()

        await self._sync_tenant_cache(subscription, plan)
        self._audit(subscription, "create", None, plan=plan.name)
        await self.session.commit()
        return subscription

    def _extend(self, subscription: Subscription, months: int) -> datetime:
        now = self.clock()
        base = max(now, subscription.end_date)
        subscription.end_date = add_months(base, months)
        subscription.status = SubscriptionStatus.ACTIVE.value
        return subscription.end_date

    async def renew(
        self, tenant_id: str, months: int = 1, billing_cycle: Optional[BillingCycle] = None
    ) -> Subscription:
        """Extend from max(now, end_date) by `months` and activate"""
        if months < 1:
            raise InvalidStateError("Renewal must add at least one month")

        subscription = await self.get(tenant_id, for_update=True)
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise InvalidStateError("Cancelled subscriptions cannot be renewed")

        previous = subscription.status
        self._extend(subscription, months)
        if billing_cycle:
            subscription.billing_cycle = BillingCycle(billing_cycle).value

        await self._sync_tenant_cache(subscription)
        self._audit(subscription, "renew", previous, months=months)
        await self.session.commit()
        logger.info(
            f"Subscription renewed by {months} month(s) until {subscription.end_date.isoformat()}",
            extra={"tenant_id": tenant_id, "subscription_id": subscription.id},
        )
        return subscription

    async def extend_for_payment(
        self, subscription: Subscription, billing_cycle: Optional[str] = None, charge_id: Optional[str] = None
    ) -> Subscription:
        """
        Confirmation side effect: one billing cycle from max(now, end_date).

        Runs inside the reconciler's transaction; the caller commits.
        """
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise InvalidStateError("Cancelled subscriptions are not extended by payments")

        previous = subscription.status
        months = cycle_months(billing_cycle or subscription.billing_cycle)
        self._extend(subscription, months)

        await self._sync_tenant_cache(subscription)
        self._audit(subscription, "extend", previous, months=months, charge_id=charge_id)
        return subscription

    async def change_plan(self, tenant_id: str, new_plan_id: str) -> Subscription:
        """Swap the plan reference; dates and status are untouched"""
        subscription = await self.get(tenant_id, for_update=True)
        plan = await self._active_plan(new_plan_id)

        previous_plan = subscription.plan.name if subscription.plan else None
        subscription.plan = plan

        await self._sync_tenant_cache(subscription, plan)
        self._audit(subscription, "change_plan", subscription.status, plan_from=previous_plan, plan_to=plan.name)
        await self.session.commit()
        return subscription

    async def cancel(self, tenant_id: str, reason: Optional[str] = None) -> Subscription:
        subscription = await self.get(tenant_id, for_update=True)
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise InvalidStateError("Subscription is already cancelled")

        previous = subscription.status
        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.cancelled_at = self.clock()
        subscription.cancel_reason = reason
        subscription.auto_renew = False

        await self._sync_tenant_cache(subscription)
        self._audit(subscription, "cancel", previous, reason=reason)
        await self.session.commit()
        return subscription

    async def suspend(self, tenant_id: str, reason: Optional[str] = None) -> Subscription:
        """Administrative override, independent of end_date"""
        subscription = await self.get(tenant_id, for_update=True)
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise InvalidStateError("Cancelled subscriptions cannot be suspended")

        previous = subscription.status
        subscription.status = SubscriptionStatus.SUSPENDED.value
        subscription.suspended_reason = reason

        await self._sync_tenant_cache(subscription)
        self._audit(subscription, "suspend", previous, reason=reason)
        await self.session.commit()
        return subscription

    async def reactivate(self, tenant_id: str) -> Subscription:
        """Lift a suspension; lands on active or expired depending on the date"""
        subscription = await self.get(tenant_id, for_update=True)
        if subscription.status != SubscriptionStatus.SUSPENDED.value:
            raise InvalidStateError("Only suspended subscriptions can be reactivated")

        previous = subscription.status
        expired = subscription.end_date < self.clock()
        subscription.status = (SubscriptionStatus.EXPIRED if expired else SubscriptionStatus.ACTIVE).value
        subscription.suspended_reason = None

        await self._sync_tenant_cache(subscription)
        self._audit(subscription, "reactivate", previous)
        await self.session.commit()
        return subscription

    async def check_validity(self, tenant_id: str) -> ValidityResult:
        """Gate check; persists `expired` when the end date has passed"""
        subscription = await self.subscriptions.get_by_tenant(tenant_id)
        if subscription is None:
            return ValidityResult(False, None, "Subscription not found")

        status = effective_status(subscription, self.clock())
        if status == SubscriptionStatus.EXPIRED and subscription.status != status.value:
            previous = subscription.status
            subscription.status = status.value
            await self._sync_tenant_cache(subscription)
            self._audit(subscription, "expire", previous)
            await self.session.commit()

        if status in GATING_STATUSES:
            return ValidityResult(True, status, subscription=subscription)
        return ValidityResult(False, status, f"Subscription is {status.value}", subscription)

    async def require_active(self, tenant_id: str) -> Subscription:
        """Raise unless the subscription currently grants access; persists a passed end date as expired"""
        result = await self.check_validity(tenant_id)
        if result.subscription is None:
            raise SubscriptionNotFound(f"Subscription for tenant {tenant_id} not found")
        if not result.is_valid:
            raise SubscriptionInactive(result.reason, result.status.value)
        return result.subscription

    async def get_subscription_info(self, tenant_id: str) -> SubscriptionInfo:
        subscription = await self.get(tenant_id)
        now = self.clock()
        remaining = (subscription.end_date - now).total_seconds() / 86400
        days = math.ceil(remaining)
        return SubscriptionInfo(
            subscription=subscription,
            plan=subscription.plan,
            status=effective_status(subscription, now),
            days_until_expiration=days,
            is_expiring_soon=0 < days <= settings.SUBSCRIPTION_EXPIRING_SOON_DAYS,
            is_expired=remaining < 0,
        )

    async def get_expiring(self, days_ahead: Optional[int] = None) -> List[ExpiringSubscription]:
        """Active or trial subscriptions ending within `days_ahead` days"""
        days_ahead = days_ahead or settings.SUBSCRIPTION_EXPIRING_SOON_DAYS
        now = self.clock()
        rows = await self.subscriptions.list_ending_between(
            now, now + timedelta(days=days_ahead), [s.value for s in GATING_STATUSES]
        )
        expiring = []
        for subscription in rows:
            days_left = math.ceil((subscription.end_date - now).total_seconds() / 86400)
            if days_left <= 1:
                urgency = "critical"
            elif days_left <= 3:
                urgency = "high"
            else:
                urgency = "normal"
            expiring.append(ExpiringSubscription(subscription, days_left, urgency))
        return expiring

    async def expire_overdue(self) -> int:
        """Batch sweep: persist `expired` for trial/active subscriptions past end date"""
        now = self.clock()
        rows = await self.subscriptions.list_ended_before(now, [s.value for s in GATING_STATUSES])
        for subscription in rows:
            previous = subscription.status
            subscription.status = SubscriptionStatus.EXPIRED.value
            await self._sync_tenant_cache(subscription)
            self._audit(subscription, "expire", previous)

        if rows:
            await self.session.commit()
            logger.info(f"Expired {len(rows)} subscriptions")
        return len(rows)

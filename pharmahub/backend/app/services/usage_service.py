# backend/app/services/usage_service.py
"""
Plan quota accounting.

Counts come from the tenant's isolated database, limits from its plan.
Admission checks are advisory: two concurrent writers can both pass before
either commits.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import (
    GATING_STATUSES,
    USAGE_CRITICAL_PERCENT,
    USAGE_METRICS,
    USAGE_WARNING_PERCENT,
    UsageDimension,
    UsageLevel,
    is_unlimited,
)
from app.core.exceptions import QuotaExceeded, SubscriptionNotFound
from app.core.logging import get_logger
from app.db.connection_router import ConnectionRegistry, TenantContext, resolve_tenant_context
from app.db.models.plan import Plan
from app.db.repositories.subscription_repository import SubscriptionRepository
from app.db.repositories.usage_repository import UsageRepository
from app.services.subscription_service import effective_status

logger = get_logger("usage")

BYTES_PER_GB = 1024 ** 3


def usage_level(percentage: float) -> UsageLevel:
    if percentage >= USAGE_CRITICAL_PERCENT:
        return UsageLevel.CRITICAL
    if percentage >= USAGE_WARNING_PERCENT:
        return UsageLevel.WARNING
    return UsageLevel.OK


@dataclass
class UsageMetric:
    name: str
    dimension: UsageDimension
    current: float
    limit: Union[int, str]
    percentage: float
    status: UsageLevel
    unit: str


@dataclass
class UsageDashboard:
    limits: Dict[str, Any]
    usage: Dict[str, Any]
    metrics: List[UsageMetric] = field(default_factory=list)


@dataclass
class LimitCheckResult:
    allowed: bool
    dimension: UsageDimension
    current: Optional[float] = None
    limit: Optional[int] = None
    message: Optional[str] = None


def plan_limits(plan: Plan) -> Dict[str, int]:
    return {
        "max_users": plan.max_users,
        "max_products": plan.max_products,
        "max_monthly_transactions": plan.max_monthly_transactions,
        "max_storage_gb": plan.max_storage_gb,
        "max_api_calls_per_minute": plan.max_api_calls_per_minute,
    }


class UsageService:
    """Computes consumption against plan quotas"""

    def __init__(self, session: AsyncSession, registry: ConnectionRegistry):
        self.session = session
        self.registry = registry
        self.subscriptions = SubscriptionRepository(session)

    async def _subscription(self, tenant_id: str):
        subscription = await self.subscriptions.get_by_tenant(tenant_id)
        if subscription is None:
            raise SubscriptionNotFound(f"Tenant {tenant_id} has no subscription")
        return subscription

    async def _count(self, usage: UsageRepository, dimension: UsageDimension) -> float:
        if dimension == UsageDimension.USERS:
            return await usage.count_active_users()
        if dimension == UsageDimension.PRODUCTS:
            return await usage.count_active_products()
        if dimension == UsageDimension.TRANSACTIONS:
            return await usage.count_transactions_this_month()
        return round(await usage.storage_bytes() / BYTES_PER_GB, 3)

    async def _context(self, tenant_id: str, context: Optional[TenantContext]) -> TenantContext:
        if context is not None:
            return context
        return await resolve_tenant_context(self.session, tenant_id=tenant_id)

    async def compute_usage(self, tenant_id: str, context: Optional[TenantContext] = None) -> UsageDashboard:
        """Dashboard of every quota dimension; works whatever the billing state"""
        subscription = await self._subscription(tenant_id)
        plan = subscription.plan
        limits = plan_limits(plan)
        context = await self._context(tenant_id, context)

        usage: Dict[str, Any] = {}
        metrics: List[UsageMetric] = []
        async with self.registry.tenant_session(context) as tenant_db:
            repo = UsageRepository(tenant_db)
            for dimension, meta in USAGE_METRICS.items():
                current = await self._count(repo, dimension)
                usage[dimension.value] = current

                limit = limits[meta["limit_field"]]
                if is_unlimited(limit):
                    percentage, display_limit = 0.0, "unlimited"
                else:
                    percentage = round(current / limit * 100, 1) if limit > 0 else 100.0
                    display_limit = limit

                metrics.append(UsageMetric(
                    name=meta["name"],
                    dimension=dimension,
                    current=current,
                    limit=display_limit,
                    percentage=percentage,
                    status=usage_level(percentage),
                    unit=meta["unit"],
                ))

        return UsageDashboard(limits=limits, usage=usage, metrics=metrics)

    async def check_limit(
        self,
        tenant_id: str,
        dimension: UsageDimension,
        additional: Optional[float] = None,
        context: Optional[TenantContext] = None,
    ) -> LimitCheckResult:
        """Would adding `additional` units stay within the plan? Fails closed when billing-gated"""
        dimension = UsageDimension(dimension)
        if additional is None:
            # Storage callers pass the GB they are about to write
            additional = 0 if dimension == UsageDimension.STORAGE else 1
        subscription = await self._subscription(tenant_id)
        status = effective_status(subscription)
        if status not in GATING_STATUSES:
            return LimitCheckResult(
                allowed=False,
                dimension=dimension,
                message=f"Subscription is {status.value}; new records are blocked",
            )

        limit = plan_limits(subscription.plan)[USAGE_METRICS[dimension]["limit_field"]]
        if is_unlimited(limit):
            return LimitCheckResult(allowed=True, dimension=dimension, limit=limit)

        context = await self._context(tenant_id, context)
        async with self.registry.tenant_session(context) as tenant_db:
            current = await self._count(UsageRepository(tenant_db), dimension)

        # A tenant already at its limit is refused even for zero-sized writes
        if current >= limit or current + additional > limit:
            unit = USAGE_METRICS[dimension]["unit"]
            return LimitCheckResult(
                allowed=False,
                dimension=dimension,
                current=current,
                limit=limit,
                message=f"Plan limit reached for {dimension.value} ({current}/{limit} {unit}). Upgrade your plan.",
            )
        return LimitCheckResult(allowed=True, dimension=dimension, current=current, limit=limit)

    async def enforce_limit(
        self,
        tenant_id: str,
        dimension: UsageDimension,
        additional: Optional[float] = None,
        context: Optional[TenantContext] = None,
    ) -> LimitCheckResult:
        result = await self.check_limit(tenant_id, dimension, additional, context)
        if not result.allowed:
            logger.info(
                f"Admission denied: {result.message}",
                extra={"tenant_id": tenant_id},
            )
            raise QuotaExceeded(
                result.message or "Plan limit reached",
                extra={"dimension": result.dimension.value, "current": result.current, "limit": result.limit},
            )
        return result

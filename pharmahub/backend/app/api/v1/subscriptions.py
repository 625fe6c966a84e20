# backend/app/api/v1/subscriptions.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_tenant_context, require_active_subscription, require_admin
from app.db.connection_router import TenantContext
from app.db.database import get_db
from app.schemas.subscription import (
    CancelRequest,
    ChangePlanRequest,
    ExpiringSubscription,
    Plan,
    RenewRequest,
    Subscription,
    SubscriptionInfo,
    SuspendRequest,
)
from app.services.plan_service import PlanService
from app.services.subscription_service import SubscriptionService

router = APIRouter()


@router.get("/plans", response_model=List[Plan])
async def list_plans(db: AsyncSession = Depends(get_db)):
    return await PlanService(db).list_plans()


@router.get("/info", response_model=SubscriptionInfo)
async def subscription_info(
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    """Subscription, plan and days left for the calling tenant"""
    info = await SubscriptionService(db).get_subscription_info(context.tenant_id)
    return SubscriptionInfo.model_validate(info)


@router.post("/renew", response_model=Subscription)
async def renew(
    renew_in: RenewRequest,
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    return await SubscriptionService(db).renew(
        context.tenant_id, months=renew_in.months, billing_cycle=renew_in.billing_cycle
    )


@router.post("/cancel", response_model=Subscription)
async def cancel(
    cancel_in: CancelRequest,
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    return await SubscriptionService(db).cancel(context.tenant_id, reason=cancel_in.reason)


@router.patch("/change-plan", response_model=Subscription)
async def change_plan(
    change_in: ChangePlanRequest,
    context: TenantContext = Depends(get_tenant_context),
    _subscription=Depends(require_active_subscription),
    db: AsyncSession = Depends(get_db),
):
    plan = await PlanService(db).get_plan(change_in.plan)
    return await SubscriptionService(db).change_plan(context.tenant_id, plan.id)


@router.get("/expiring", response_model=List[ExpiringSubscription], dependencies=[Depends(require_admin)])
async def list_expiring(
    days_ahead: int = Query(7, ge=1, le=90),
    db: AsyncSession = Depends(get_db),
):
    """Trial and active subscriptions ending soon, most urgent first"""
    expiring = await SubscriptionService(db).get_expiring(days_ahead=days_ahead)
    return [ExpiringSubscription.model_validate(e) for e in expiring]


@router.post("/{tenant_id}/suspend", response_model=Subscription, dependencies=[Depends(require_admin)])
async def suspend(tenant_id: str, suspend_in: SuspendRequest, db: AsyncSession = Depends(get_db)):
    return await SubscriptionService(db).suspend(tenant_id, reason=suspend_in.reason)


@router.post("/{tenant_id}/reactivate", response_model=Subscription, dependencies=[Depends(require_admin)])
async def reactivate(tenant_id: str, db: AsyncSession = Depends(get_db)):
    return await SubscriptionService(db).reactivate(tenant_id)

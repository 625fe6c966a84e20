# backend/app/api/v1/usage.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_tenant_context
from app.core.constants import UsageDimension
from app.db.connection_router import ConnectionRegistry, TenantContext, get_registry
from app.db.database import get_db
from app.schemas.usage import LimitCheck, UsageDashboard
from app.services.usage_service import UsageService

router = APIRouter()


@router.get("/current", response_model=UsageDashboard)
async def current_usage(
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Consumption against every plan quota"""
    dashboard = await UsageService(db, registry).compute_usage(context.tenant_id, context=context)
    return UsageDashboard.model_validate(dashboard)


@router.get("/check/{dimension}", response_model=LimitCheck)
async def check_limit(
    dimension: UsageDimension,
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    result = await UsageService(db, registry).check_limit(context.tenant_id, dimension, context=context)
    return LimitCheck.model_validate(result)

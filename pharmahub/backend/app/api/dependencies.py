# backend/app/api/dependencies.py
import hmac
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import UsageDimension
from app.core.exceptions import AuthError, ModuleNotEnabled
from app.core.tenant import tenant_identifiers
from app.db.connection_router import (
    ConnectionRegistry,
    TenantContext,
    get_registry,
    resolve_tenant_context,
)
from app.db.database import get_db
from app.db.models.subscription import Subscription
from app.services.payment.payment_service import PaymentService
from app.services.subscription_service import SubscriptionService
from app.services.usage_service import UsageService


async def get_tenant_context(
    identifiers: dict = Depends(tenant_identifiers),
    db: AsyncSession = Depends(get_db),
) -> TenantContext:
    """Resolve the calling tenant; 400 unidentified, 404 unknown, 403 inactive"""
    return await resolve_tenant_context(db, **identifiers)


async def get_tenant_db(
    context: TenantContext = Depends(get_tenant_context),
    registry: ConnectionRegistry = Depends(get_registry),
) -> AsyncGenerator[AsyncSession, None]:
    """Session on the tenant's isolated database"""
    async with registry.tenant_session(context) as session:
        yield session


async def require_active_subscription(
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    """Gate for billable routes; 403 LICENSE_* when not trial/active"""
    return await SubscriptionService(db).require_active(context.tenant_id)


def require_quota(dimension: UsageDimension, additional: Optional[float] = None):
    """Dependency factory rejecting the request with 402 when the plan limit is reached"""
    async def quota_checker(
        context: TenantContext = Depends(get_tenant_context),
        db: AsyncSession = Depends(get_db),
        registry: ConnectionRegistry = Depends(get_registry),
    ) -> TenantContext:
        await UsageService(db, registry).enforce_limit(
            context.tenant_id, dimension, additional, context=context
        )
        return context

    return quota_checker


def require_module(module: str):
    """Dependency factory rejecting the request with 403 when the tenant lacks a module"""
    async def module_checker(context: TenantContext = Depends(get_tenant_context)) -> TenantContext:
        if module not in context.modules_enabled:
            raise ModuleNotEnabled(module)
        return context

    return module_checker


async def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    """Platform operator routes"""
    if not settings.ADMIN_API_KEY:
        raise AuthError("Admin API is disabled: ADMIN_API_KEY is not configured")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        raise AuthError("Invalid admin key")


async def get_payment_service(db: AsyncSession = Depends(get_db)) -> PaymentService:
    return PaymentService(db)

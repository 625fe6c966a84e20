# backend/app/api/v1/tenants.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_tenant_context, require_admin
from app.db.connection_router import ConnectionRegistry, TenantContext, get_registry, resolve_tenant_context
from app.db.database import get_db, init_tenant_db
from app.schemas.tenant import ModuleStatus, ModuleToggle, Tenant as TenantSchema, TenantCreate
from app.services.tenant_service import TenantService

router = APIRouter()


@router.get("/me", response_model=TenantSchema)
async def get_current_tenant(
    context: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    """Get current tenant information"""
    return await TenantService(db).get_tenant(context.tenant_id)


@router.get("", response_model=List[TenantSchema], dependencies=[Depends(require_admin)])
async def list_tenants(
    tenant_status: Optional[str] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    return await TenantService(db).list_tenants(status=tenant_status)


@router.post(
    "",
    response_model=TenantSchema,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def provision_tenant(
    tenant_in: TenantCreate,
    db: AsyncSession = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Register a tenant, start its trial and create its tenant-side tables"""
    tenant = await TenantService(db).provision_tenant(
        cnpj=tenant_in.cnpj,
        name=tenant_in.name,
        plan_name=tenant_in.plan,
        database_name=tenant_in.database_name,
        database_user=tenant_in.database_user,
        database_password=tenant_in.database_password,
        billing_cycle=tenant_in.billing_cycle,
        modules=tenant_in.modules,
        billing_email=tenant_in.billing_email,
        metadata=tenant_in.metadata,
    )
    context = await resolve_tenant_context(db, tenant_id=tenant.id)
    async with registry.tenant_engine(context) as tenant_engine:
        await init_tenant_db(tenant_engine)
    return tenant


@router.post("/{tenant_id}/deactivate", response_model=TenantSchema, dependencies=[Depends(require_admin)])
async def deactivate_tenant(tenant_id: str, db: AsyncSession = Depends(get_db)):
    return await TenantService(db).deactivate_tenant(tenant_id)


@router.post("/{tenant_id}/reactivate", response_model=TenantSchema, dependencies=[Depends(require_admin)])
async def reactivate_tenant(tenant_id: str, db: AsyncSession = Depends(get_db)):
    return await TenantService(db).reactivate_tenant(tenant_id)


@router.get("/{tenant_id}/modules", response_model=List[ModuleStatus], dependencies=[Depends(require_admin)])
async def list_modules(tenant_id: str, db: AsyncSession = Depends(get_db)):
    """Module catalog with the tenant's grants"""
    return await TenantService(db).list_modules(tenant_id)


@router.patch("/{tenant_id}/modules", response_model=TenantSchema, dependencies=[Depends(require_admin)])
async def toggle_module(tenant_id: str, toggle_in: ModuleToggle, db: AsyncSession = Depends(get_db)):
    return await TenantService(db).set_module(tenant_id, toggle_in.module, toggle_in.enabled)

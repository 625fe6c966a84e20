# backend/app/services/tenant_service.py
import re
import secrets
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import AVAILABLE_MODULES, BillingCycle, TenantStatus
from app.core.encryption import get_encryption_service
from app.core.exceptions import ConflictError, TenantNotFound, UnknownModule
from app.core.logging import get_logger
from app.db.models.tenant import Tenant
from app.db.repositories.tenant_repository import TenantRepository
from app.services.plan_service import PlanService
from app.services.subscription_service import SubscriptionService

logger = get_logger("tenants")


def normalize_cnpj(cnpj: str) -> str:
    return re.sub(r"\D", "", cnpj)


class TenantService:
    """Tenant directory provisioning"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.tenants = TenantRepository(session)

    async def get_tenant(self, identifier: str) -> Tenant:
        """By opaque id or CNPJ"""
        tenant = await self.tenants.get_by_id(identifier) or await self.tenants.get_by_cnpj(
            normalize_cnpj(identifier)
        )
        if tenant is None:
            raise TenantNotFound(f"Tenant {identifier} not found")
        return tenant

    async def list_tenants(self, status: Optional[str] = None) -> List[Tenant]:
        if status:
            return await self.tenants.list_by_status(status)
        return await self.tenants.get_multi(limit=1000)

    async def provision_tenant(
        self,
        cnpj: str,
        name: str,
        plan_name: str = "starter",
        database_name: Optional[str] = None,
        database_user: Optional[str] = None,
        database_password: Optional[str] = None,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        modules: Optional[List[str]] = None,
        billing_email: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Tenant:
        """Register a tenant with encrypted database credentials and a trial subscription"""
        cnpj = normalize_cnpj(cnpj)
        if await self.tenants.get_by_cnpj(cnpj) is not None:
            raise ConflictError(f"A tenant with CNPJ {cnpj} already exists")

        plan_obj = await PlanService(self.session).get_plan(plan_name)
        suffix = secrets.token_hex(4)
        database_name = database_name or f"tenant_{cnpj}_{suffix}"
        extra = dict(metadata or {})
        if billing_email:
            extra["billing_email"] = billing_email

        tenant = Tenant(
            cnpj=cnpj,
            name=name,
            status=TenantStatus.ACTIVE.value,
            database_name=database_name,
            database_user=database_user or database_name,
            database_password_enc=get_encryption_service().encrypt(
                database_password or secrets.token_urlsafe(24)
            ),
            plan=plan_obj.name,
            modules_enabled=list(modules if modules is not None else plan_obj.features or []),
            extra_data=extra,
        )
        self.session.add(tenant)
        await self.session.flush()

        await SubscriptionService(self.session).create_subscription(
            tenant.id, plan_obj.id, billing_cycle=billing_cycle, trial=True
        )
        logger.info(f"Tenant provisioned: {name}", extra={"tenant_id": tenant.id})
        return tenant

    async def _set_status(self, tenant_id: str, status: TenantStatus) -> Tenant:
        tenant = await self.tenants.get_by_id(tenant_id)
        if tenant is None:
            raise TenantNotFound(f"Tenant {tenant_id} not found")
        tenant.status = status.value
        await self.session.commit()
        logger.info(f"Tenant status set to {status.value}", extra={"tenant_id": tenant_id})
        return tenant

    async def deactivate_tenant(self, tenant_id: str) -> Tenant:
        """Soft deactivation; tenants are never deleted"""
        return await self._set_status(tenant_id, TenantStatus.INACTIVE)

    async def reactivate_tenant(self, tenant_id: str) -> Tenant:
        return await self._set_status(tenant_id, TenantStatus.ACTIVE)

    async def list_modules(self, tenant_id: str) -> List[Dict[str, Any]]:
        """Module catalog with the tenant's current grant per module"""
        tenant = await self.get_tenant(tenant_id)
        enabled = set(tenant.modules_enabled or ())
        return [
            {"id": module, "description": description, "enabled": module in enabled}
            for module, description in AVAILABLE_MODULES.items()
        ]

    async def set_module(self, tenant_id: str, module: str, enabled: bool) -> Tenant:
        """
        Grant or revoke one module.

        A plan change resets the grants to the new plan's features.
        """
        module = module.upper()
        if module not in AVAILABLE_MODULES:
            raise UnknownModule(f"Unknown module {module}")
        tenant = await self.get_tenant(tenant_id)

        modules = [m for m in (tenant.modules_enabled or []) if m != module]
        if enabled:
            modules.append(module)
        # JSON column: assign a new list so the change is tracked
        tenant.modules_enabled = modules
        await self.session.commit()
        logger.info(
            f"Module {module} {'enabled' if enabled else 'disabled'}",
            extra={"tenant_id": tenant.id},
        )
        return tenant

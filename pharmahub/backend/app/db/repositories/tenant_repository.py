# backend/app/db/repositories/tenant_repository.py
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.tenant import Tenant
from app.db.repositories.base import BaseRepository


class TenantRepository(BaseRepository[Tenant]):
    """Repository for Tenant operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Tenant, session)

    async def get_by_id(self, tenant_id: str) -> Optional[Tenant]:
        """Get tenant by ID"""
        result = await self.session.execute(
            select(Tenant).where(Tenant.id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def get_by_cnpj(self, cnpj: str) -> Optional[Tenant]:
        """Get tenant by legal tax id"""
        result = await self.session.execute(
            select(Tenant).where(Tenant.cnpj == cnpj)
        )
        return result.scalar_one_or_none()

    async def list_by_status(self, status: str) -> List[Tenant]:
        result = await self.session.execute(
            select(Tenant).where(Tenant.status == status).order_by(Tenant.name)
        )
        return list(result.scalars().all())

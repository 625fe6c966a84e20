# backend/app/db/repositories/usage_repository.py
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import utcnow
from app.db.models.tenant_data import TenantUser, Product, Invoice, StoredFile


class UsageRepository:
    """Live consumption counts read from a tenant's isolated database"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def count_active_users(self) -> int:
        result = await self.session.execute(
            select(func.count(TenantUser.id)).where(TenantUser.is_active.is_(True))
        )
        return result.scalar() or 0

    async def count_active_products(self) -> int:
        result = await self.session.execute(
            select(func.count(Product.id)).where(Product.is_active.is_(True))
        )
        return result.scalar() or 0

    async def count_transactions_this_month(self) -> int:
        """Count invoices in current month"""
        start_of_month = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        result = await self.session.execute(
            select(func.count(Invoice.id)).where(Invoice.created_at >= start_of_month)
        )
        return result.scalar() or 0

    async def storage_bytes(self) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(StoredFile.size_bytes), 0))
        )
        return int(result.scalar() or 0)

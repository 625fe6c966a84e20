# backend/app/db/repositories/payment_repository.py
from typing import Optional, List, Iterable
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.payment import Payment
from app.db.repositories.base import BaseRepository


class PaymentRepository(BaseRepository[Payment]):
    """Repository for the charge ledger"""

    def __init__(self, session: AsyncSession):
        super().__init__(Payment, session)

    async def get_by_gateway_charge_id(
        self,
        gateway_charge_id: str,
        gateway: Optional[str] = None,
        for_update: bool = False,
    ) -> Optional[Payment]:
        """Look up a charge by the provider's id, optionally row-locked"""
        query = select(Payment).where(Payment.gateway_charge_id == gateway_charge_id)
        if gateway:
            query = query.where(Payment.gateway == gateway)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_by_tenant(self, tenant_id: str, skip: int = 0, limit: int = 50) -> List[Payment]:
        result = await self.session.execute(
            select(Payment)
            .where(Payment.tenant_id == tenant_id)
            .order_by(Payment.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_status(self, statuses: Iterable[str]) -> List[Payment]:
        result = await self.session.execute(
            select(Payment)
            .where(Payment.status.in_(list(statuses)))
            .order_by(Payment.created_at)
        )
        return list(result.scalars().all())

# backend/app/db/repositories/subscription_repository.py
from datetime import datetime
from typing import Optional, List, Iterable
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.subscription import Subscription
from app.db.repositories.base import BaseRepository


class SubscriptionRepository(BaseRepository[Subscription]):
    """Repository for Subscription operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Subscription, session)

    async def get_by_tenant(self, tenant_id: str, for_update: bool = False) -> Optional[Subscription]:
        """Get the tenant's subscription, optionally row-locked"""
        query = select(Subscription).where(Subscription.tenant_id == tenant_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_ending_between(
        self, start: datetime, end: datetime, statuses: Iterable[str]
    ) -> List[Subscription]:
        """Subscriptions in the given states whose end date falls in [start, end]"""
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.status.in_(list(statuses)))
            .where(Subscription.end_date >= start)
            .where(Subscription.end_date <= end)
            .order_by(Subscription.end_date)
        )
        return list(result.scalars().all())

    async def list_ended_before(self, moment: datetime, statuses: Iterable[str]) -> List[Subscription]:
        """Subscriptions still in the given states with end date in the past"""
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.status.in_(list(statuses)))
            .where(Subscription.end_date < moment)
        )
        return list(result.scalars().all())

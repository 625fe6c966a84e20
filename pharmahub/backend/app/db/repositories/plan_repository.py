# backend/app/db/repositories/plan_repository.py
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.plan import Plan
from app.db.repositories.base import BaseRepository


class PlanRepository(BaseRepository[Plan]):
    """Repository for the plan catalog"""

    def __init__(self, session: AsyncSession):
        super().__init__(Plan, session)

    async def get_by_name(self, name: str) -> Optional[Plan]:
        result = await self.session.execute(
            select(Plan).where(Plan.name == name)
        )
        return result.scalar_one_or_none()

    async def list_plans(self, active_only: bool = True) -> List[Plan]:
        query = select(Plan).order_by(Plan.price_monthly)
        if active_only:
            query = query.where(Plan.is_active.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())

# backend/app/services/plan_service.py
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import DEFAULT_PLANS
from app.core.exceptions import PlanNotFound
from app.core.logging import get_logger
from app.db.models.plan import Plan
from app.db.repositories.plan_repository import PlanRepository

logger = get_logger("plans")


class PlanService:
    """Plan catalog administration"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.plans = PlanRepository(session)

    async def list_plans(self, active_only: bool = True) -> List[Plan]:
        return await self.plans.list_plans(active_only=active_only)

    async def get_plan(self, plan_id_or_name: str) -> Plan:
        plan = await self.plans.get(plan_id_or_name) or await self.plans.get_by_name(plan_id_or_name)
        if plan is None:
            raise PlanNotFound(f"Plan {plan_id_or_name} not found")
        return plan

    async def upsert_plan(self, data: Dict[str, Any]) -> Plan:
        """Create or update a plan keyed by name"""
        plan = await self.plans.get_by_name(data["name"])
        if plan is None:
            plan = Plan(**data)
            self.session.add(plan)
        else:
            for key, value in data.items():
                setattr(plan, key, value)
        await self.session.commit()
        return plan

    async def seed_default_plans(self) -> List[Plan]:
        """Insert the default catalog; existing plans are left as they are"""
        seeded = []
        for data in DEFAULT_PLANS:
            if await self.plans.get_by_name(data["name"]) is None:
                plan = Plan(**data)
                self.session.add(plan)
                seeded.append(plan)
        if seeded:
            await self.session.commit()
            logger.info(f"Seeded {len(seeded)} plans: {', '.join(p.name for p in seeded)}")
        return seeded

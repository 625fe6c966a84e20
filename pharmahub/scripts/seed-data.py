# scripts/seed-data.py
"""Seed database with the plan catalog and a demo tenant"""
import asyncio

from app.core.exceptions import ConflictError
from app.db.connection_router import registry, resolve_tenant_context
from app.db.database import async_session_local, init_db, init_tenant_db
from app.db.models.tenant_data import TenantUser
from app.services.plan_service import PlanService
from app.services.tenant_service import TenantService

DEMO_CNPJ = "12345678000190"


async def seed_data():
    """Seed database with test data"""
    await init_db()
    async with async_session_local() as session:
        plans = await PlanService(session).seed_default_plans()
        print(f"Seeded plans: {', '.join(p.name for p in plans) or 'none (already present)'}")

        try:
            tenant = await TenantService(session).provision_tenant(
                cnpj=DEMO_CNPJ,
                name="Distribuidora Demo",
                plan_name="starter",
                database_name="tenant_demo",
                database_user="tenant_demo",
                database_password="demo-password",
                billing_email="financeiro@demo.com.br",
            )
            print(f"Created tenant: {tenant.name} ({tenant.id})")
        except ConflictError:
            tenant = await TenantService(session).get_tenant(DEMO_CNPJ)
            print(f"Tenant already exists: {tenant.name} ({tenant.id})")

        context = await resolve_tenant_context(session, tenant_id=tenant.id)

    async with registry.tenant_engine(context) as tenant_engine:
        await init_tenant_db(tenant_engine)
    async with registry.tenant_session(context) as tenant_db:
        tenant_db.add(TenantUser(email="owner@demo.com.br", full_name="Demo Owner", role="owner"))
        await tenant_db.commit()

    await registry.dispose_all()
    print("\nUse these headers against the API:")
    print(f"X-Tenant-ID: {tenant.id}")
    print(f"X-Tenant-CNPJ: {DEMO_CNPJ}")


if __name__ == "__main__":
    asyncio.run(seed_data())

"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["WEBHOOK_REQUIRE_TOKEN"] = "false"

import itertools
import json
from typing import Any, AsyncGenerator, Dict, Optional, Set

import httpx
import pytest
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.main import app
from app.api.dependencies import get_payment_service
from app.core.constants import GatewayName
from app.db.connection_router import ConnectionRegistry, get_registry, resolve_tenant_context
from app.db.database import create_engine_for, get_db, init_db, init_tenant_db, make_session_factory
from app.db.models.tenant import Tenant
from app.services.payment.gateway_config import GatewaySettings, gateway_settings_cache
from app.services.payment.payment_service import PaymentService
from app.services.plan_service import PlanService
from app.services.tenant_service import TenantService

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}
ASAAS_WEBHOOK_TOKEN = "asaas-webhook-token"


class FakeAsaasApi:
    """In-memory Asaas v3 API served through httpx.MockTransport"""

    def __init__(self):
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.charges: Dict[str, Dict[str, Any]] = {}
        self.missing: Set[str] = set()
        self.requests = []
        self._ids = itertools.count(1)
        self.fail_with: Optional[int] = None

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def set_status(self, charge_id: str, status: str) -> None:
        self.charges[charge_id]["status"] = status

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"errors": [{"description": "Upstream failure"}]})

        path = request.url.path.replace("/api/v3", "", 1)
        parts = [p for p in path.split("/") if p]

        if parts == ["customers"] and request.method == "GET":
            tax_id = request.url.params.get("cpfCnpj")
            data = [c for c in self.customers.values() if c["cpfCnpj"] == tax_id]
            return httpx.Response(200, json={"data": data, "totalCount": len(data)})

        if parts == ["customers"] and request.method == "POST":
            body = json.loads(request.content)
            customer = {"id": f"cus_{next(self._ids)}", **body}
            self.customers[customer["id"]] = customer
            return httpx.Response(200, json=customer)

        if parts == ["payments"] and request.method == "POST":
            body = json.loads(request.content)
            charge = {
                "id": f"pay_{next(self._ids)}",
                "status": "PENDING",
                "value": body["value"],
                "dueDate": body["dueDate"],
                "billingType": body["billingType"],
                "invoiceUrl": "https://sandbox.asaas.com/i/abc",
                "bankSlipUrl": "https://sandbox.asaas.com/b/pdf/abc" if body["billingType"] == "BOLETO" else None,
            }
            self.charges[charge["id"]] = charge
            return httpx.Response(200, json=charge)

        if len(parts) == 3 and parts[0] == "payments" and parts[2] == "pixQrCode":
            return httpx.Response(200, json={"payload": "00020126pix-copy-paste", "encodedImage": "iVBORw0KGgo="})

        if len(parts) == 2 and parts[0] == "payments":
            charge_id = parts[1]
            if charge_id in self.missing or charge_id not in self.charges:
                return httpx.Response(404, json={"errors": [{"description": "Cobrança não encontrada"}]})
            if request.method == "DELETE":
                self.charges[charge_id]["status"] = "DELETED"
                return httpx.Response(200, json={"deleted": True, "id": charge_id})
            return httpx.Response(200, json=self.charges[charge_id])

        return httpx.Response(404, json={"errors": [{"description": f"No route for {path}"}]})


@pytest.fixture
def directory_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'directory.db'}"


@pytest.fixture
async def directory_engine(directory_url: str):
    """Fresh directory database per test"""
    engine = create_engine_for(directory_url, pool_size=1)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(directory_engine):
    return make_session_factory(directory_engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def registry(directory_url: str, session_factory) -> AsyncGenerator[ConnectionRegistry, None]:
    registry = ConnectionRegistry(
        base_url=directory_url,
        directory_session_factory=session_factory,
        max_idle_seconds=300,
        pool_size=1,
    )
    yield registry
    await registry.dispose_all()


@pytest.fixture
async def plans(db_session: AsyncSession) -> Dict[str, Any]:
    await PlanService(db_session).seed_default_plans()
    return {plan.name: plan for plan in await PlanService(db_session).list_plans()}


@pytest.fixture
async def tenant(db_session: AsyncSession, plans, registry: ConnectionRegistry) -> Tenant:
    """Starter-plan tenant on trial, with its tenant database created"""
    tenant = await TenantService(db_session).provision_tenant(
        cnpj="12.345.678/0001-90",
        name="Farmácia São João",
        plan_name="starter",
        database_name="tenant_sao_joao",
        database_user="sao_joao",
        database_password="s3cret-db-pass",
        billing_email="financeiro@saojoao.com.br",
    )
    context = await resolve_tenant_context(db_session, tenant_id=tenant.id)
    async with registry.tenant_engine(context) as tenant_engine:
        await init_tenant_db(tenant_engine)
    return tenant


@pytest.fixture
async def tenant_context(db_session: AsyncSession, tenant: Tenant):
    return await resolve_tenant_context(db_session, tenant_id=tenant.id)


@pytest.fixture
def tenant_headers(tenant: Tenant) -> dict:
    return {"X-Tenant-ID": tenant.id}


@pytest.fixture
def fake_asaas() -> FakeAsaasApi:
    return FakeAsaasApi()


@pytest.fixture
def gateway_snapshot() -> GatewaySettings:
    return GatewaySettings(
        active_gateway=GatewayName.ASAAS,
        asaas_environment="sandbox",
        asaas_api_key="aact_test_key_0123456789",
        asaas_webhook_token=ASAAS_WEBHOOK_TOKEN,
    )


@pytest.fixture
def payment_service_factory(gateway_snapshot: GatewaySettings, fake_asaas: FakeAsaasApi):
    def factory(session: AsyncSession, **kwargs) -> PaymentService:
        kwargs.setdefault("gateway_settings", gateway_snapshot)
        kwargs.setdefault("transport", fake_asaas.transport)
        return PaymentService(session, **kwargs)

    return factory


@pytest.fixture
async def client(
    session_factory, registry: ConnectionRegistry, payment_service_factory
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """API client bound to the per-test directory and fake gateway"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_payment_service(db: AsyncSession = Depends(get_db)):
        return payment_service_factory(db)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_payment_service] = override_payment_service

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
    gateway_settings_cache.clear()

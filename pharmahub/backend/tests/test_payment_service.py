"""
Tests for the payment ledger: charge creation, webhook reconciliation,
status sync and cancellation.
"""
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.config import settings
from app.core.constants import BillingCycle, GatewayName, PaymentMethod, PaymentStatus, SubscriptionStatus
from app.core.exceptions import AuthError, ChargeNotFound, ConfigurationError, GatewayError, InvalidStateError
from app.db.models.audit_log import AuditLog
from app.db.models.payment import Payment
from app.db.models.subscription import Subscription
from app.db.repositories.audit_log_repository import AuditLogRepository
from app.services.payment.gateway_config import GatewaySettings
from app.services.payment.payment_service import is_transition_allowed
from app.services.subscription_service import add_months

ASAAS_WEBHOOK_TOKEN = "asaas-webhook-token"


def received(charge_id: str, event: str = "PAYMENT_RECEIVED", status: str = "RECEIVED") -> dict:
    return {"event": event, "payment": {"id": charge_id, "status": status}}


async def fetch_subscription(session_factory, tenant_id: str) -> Subscription:
    async with session_factory() as session:
        result = await session.execute(select(Subscription).where(Subscription.tenant_id == tenant_id))
        return result.scalar_one()


async def fetch_payment(session_factory, gateway_charge_id: str) -> Payment:
    async with session_factory() as session:
        result = await session.execute(select(Payment).where(Payment.gateway_charge_id == gateway_charge_id))
        return result.scalar_one()


@pytest.fixture
async def charge(db_session, tenant, payment_service_factory) -> Payment:
    service = payment_service_factory(db_session)
    return await service.create_charge(
        tenant_id=tenant.id,
        amount=Decimal("299.00"),
        payment_method=PaymentMethod.PIX,
        description="Plano Starter - mensal",
        billing_cycle=BillingCycle.MONTHLY,
    )


@pytest.mark.asyncio
class TestCreateCharge:

    async def test_charge_is_recorded_pending(self, charge, tenant, fake_asaas):
        assert charge.status == PaymentStatus.PENDING.value
        assert charge.gateway == GatewayName.ASAAS.value
        assert charge.gateway_charge_id in fake_asaas.charges
        assert charge.tenant_id == tenant.id
        assert charge.amount == Decimal("299.00")
        assert charge.pix_qr_code == "00020126pix-copy-paste"
        assert charge.due_date is not None

    async def test_customer_comes_from_tenant_billing_identity(self, charge, fake_asaas):
        customer = next(iter(fake_asaas.customers.values()))

        assert customer["cpfCnpj"] == "12345678000190"
        assert customer["email"] == "financeiro@saojoao.com.br"

    async def test_creation_is_audited(self, charge, db_session):
        entries = await AuditLogRepository(db_session).list_for_resource("charge", charge.gateway_charge_id)

        assert [e.action for e in entries] == ["charge.create"]
        assert entries[0].tenant_id == charge.tenant_id

    async def test_missing_credentials_fail_before_any_call(self, db_session, tenant, payment_service_factory, fake_asaas):
        """
        Test: Active gateway has no API key

        Expected:
        - ConfigurationError
        - No HTTP request and no local charge
        """
        service = payment_service_factory(db_session, gateway_settings=GatewaySettings())

        with pytest.raises(ConfigurationError):
            await service.create_charge(tenant.id, Decimal("10"), PaymentMethod.PIX, "Teste")

        assert fake_asaas.requests == []
        assert (await db_session.execute(select(Payment))).scalars().all() == []

    async def test_gateway_failure_persists_nothing(self, db_session, tenant, payment_service_factory, fake_asaas):
        fake_asaas.fail_with = 500
        service = payment_service_factory(db_session)

        with pytest.raises(GatewayError):
            await service.create_charge(tenant.id, Decimal("10"), PaymentMethod.BOLETO, "Teste")

        assert (await db_session.execute(select(Payment))).scalars().all() == []


@pytest.mark.asyncio
class TestWebhookReconciliation:

    async def test_confirmation_extends_subscription(self, charge, tenant, db_session, session_factory, payment_service_factory):
        """
        Test: PAYMENT_RECEIVED for a pending charge

        Expected:
        - Charge becomes confirmed with paid_at
        - Subscription becomes active, extended one month from its end date
        """
        before = await fetch_subscription(session_factory, tenant.id)
        service = payment_service_factory(db_session)

        outcome = await service.process_webhook(
            GatewayName.ASAAS, received(charge.gateway_charge_id), ASAAS_WEBHOOK_TOKEN
        )

        assert outcome.processed is True
        assert outcome.message == "Charge pending -> confirmed"

        payment = await fetch_payment(session_factory, charge.gateway_charge_id)
        assert payment.status == PaymentStatus.CONFIRMED.value
        assert payment.paid_at is not None

        after = await fetch_subscription(session_factory, tenant.id)
        assert after.status == SubscriptionStatus.ACTIVE.value
        assert after.end_date == add_months(before.end_date, 1)

    async def test_replayed_webhook_is_a_no_op(self, charge, tenant, db_session, session_factory, payment_service_factory):
        service = payment_service_factory(db_session)
        payload = received(charge.gateway_charge_id)

        await service.process_webhook(GatewayName.ASAAS, payload, ASAAS_WEBHOOK_TOKEN)
        extended = await fetch_subscription(session_factory, tenant.id)

        outcome = await service.process_webhook(GatewayName.ASAAS, payload, ASAAS_WEBHOOK_TOKEN)

        assert outcome.processed is False
        assert outcome.message == "Charge already confirmed"
        assert (await fetch_subscription(session_factory, tenant.id)).end_date == extended.end_date

    async def test_concurrent_deliveries_extend_once(self, charge, tenant, session_factory, payment_service_factory):
        """
        Test: The same confirmation delivered twice at the same time

        Expected:
        - Exactly one delivery reports a change
        - Subscription extended by exactly one cycle
        """
        before = await fetch_subscription(session_factory, tenant.id)
        payload = received(charge.gateway_charge_id)

        async def deliver():
            async with session_factory() as session:
                service = payment_service_factory(session)
                return await service.process_webhook(GatewayName.ASAAS, payload, ASAAS_WEBHOOK_TOKEN)

        outcomes = await asyncio.gather(deliver(), deliver())

        assert sorted(o.processed for o in outcomes) == [False, True]
        after = await fetch_subscription(session_factory, tenant.id)
        assert after.end_date == add_months(before.end_date, 1)

    async def test_cancelled_charge_cannot_be_confirmed(self, charge, tenant, db_session, session_factory, payment_service_factory):
        service = payment_service_factory(db_session)
        before = await fetch_subscription(session_factory, tenant.id)

        await service.process_webhook(
            GatewayName.ASAAS,
            received(charge.gateway_charge_id, "PAYMENT_DELETED", "DELETED"),
            ASAAS_WEBHOOK_TOKEN,
        )
        outcome = await service.process_webhook(
            GatewayName.ASAAS, received(charge.gateway_charge_id), ASAAS_WEBHOOK_TOKEN
        )

        assert outcome.processed is False
        assert outcome.message == "Transition cancelled -> confirmed rejected"
        assert (await fetch_payment(session_factory, charge.gateway_charge_id)).status == "cancelled"
        assert (await fetch_subscription(session_factory, tenant.id)).end_date == before.end_date

        rejected = await db_session.execute(
            select(AuditLog).where(AuditLog.action == "charge.transition_rejected")
        )
        assert len(rejected.scalars().all()) == 1

    async def test_overdue_charge_cannot_be_confirmed(self, charge, db_session, session_factory, payment_service_factory):
        service = payment_service_factory(db_session)
        await service.process_webhook(
            GatewayName.ASAAS,
            received(charge.gateway_charge_id, "PAYMENT_OVERDUE", "OVERDUE"),
            ASAAS_WEBHOOK_TOKEN,
        )

        outcome = await service.process_webhook(
            GatewayName.ASAAS, received(charge.gateway_charge_id), ASAAS_WEBHOOK_TOKEN
        )

        assert outcome.processed is False
        assert (await fetch_payment(session_factory, charge.gateway_charge_id)).status == "overdue"

    async def test_confirmed_charge_can_be_refunded(self, charge, db_session, payment_service_factory):
        service = payment_service_factory(db_session)
        await service.process_webhook(GatewayName.ASAAS, received(charge.gateway_charge_id), ASAAS_WEBHOOK_TOKEN)

        outcome = await service.process_webhook(
            GatewayName.ASAAS,
            received(charge.gateway_charge_id, "PAYMENT_REFUNDED", "REFUNDED"),
            ASAAS_WEBHOOK_TOKEN,
        )

        assert outcome.processed is True
        assert outcome.message == "Charge confirmed -> refunded"

    async def test_bad_token_mutates_nothing(self, charge, db_session, session_factory, payment_service_factory):
        service = payment_service_factory(db_session)

        with pytest.raises(AuthError):
            await service.process_webhook(GatewayName.ASAAS, received(charge.gateway_charge_id), "wrong-token")
        with pytest.raises(AuthError):
            await service.process_webhook(GatewayName.ASAAS, received(charge.gateway_charge_id), None)

        assert (await fetch_payment(session_factory, charge.gateway_charge_id)).status == "pending"

    async def test_unknown_charge_is_acknowledged(self, tenant, db_session, payment_service_factory):
        service = payment_service_factory(db_session)

        outcome = await service.process_webhook(GatewayName.ASAAS, received("pay_unknown"), ASAAS_WEBHOOK_TOKEN)

        assert outcome.processed is False
        assert outcome.message == "Payment not found locally"

    async def test_ignored_event(self, charge, db_session, payment_service_factory):
        service = payment_service_factory(db_session)

        outcome = await service.process_webhook(
            GatewayName.ASAAS,
            {"event": "PAYMENT_CREATED", "payment": {"id": charge.gateway_charge_id}},
            ASAAS_WEBHOOK_TOKEN,
        )

        assert outcome.processed is False
        assert outcome.message == "Event PAYMENT_CREATED ignored"

    async def test_unconfigured_token_is_accepted_outside_production(self, charge, db_session, gateway_snapshot, payment_service_factory):
        snapshot = GatewaySettings(
            active_gateway=gateway_snapshot.active_gateway,
            asaas_api_key=gateway_snapshot.asaas_api_key,
        )
        service = payment_service_factory(db_session, gateway_settings=snapshot)

        outcome = await service.process_webhook(GatewayName.ASAAS, received(charge.gateway_charge_id), None)

        assert outcome.processed is True

    async def test_unconfigured_token_is_rejected_when_required(self, charge, db_session, gateway_snapshot, payment_service_factory, monkeypatch):
        monkeypatch.setattr(settings, "WEBHOOK_REQUIRE_TOKEN", True)
        snapshot = GatewaySettings(asaas_api_key=gateway_snapshot.asaas_api_key)
        service = payment_service_factory(db_session, gateway_settings=snapshot)

        with pytest.raises(AuthError):
            await service.process_webhook(GatewayName.ASAAS, received(charge.gateway_charge_id), None)


@pytest.mark.asyncio
class TestSyncAndCancel:

    async def test_sync_applies_remote_confirmation(self, charge, tenant, db_session, fake_asaas, payment_service_factory):
        fake_asaas.set_status(charge.gateway_charge_id, "RECEIVED")
        service = payment_service_factory(db_session)

        result = await service.sync_charge_status(charge.gateway_charge_id)

        assert result.updated is True
        assert result.previous_status == PaymentStatus.PENDING
        assert result.new_status == PaymentStatus.CONFIRMED

    async def test_sync_treats_missing_remote_charge_as_cancelled(self, charge, db_session, fake_asaas, payment_service_factory):
        fake_asaas.missing.add(charge.gateway_charge_id)
        service = payment_service_factory(db_session)

        result = await service.sync_charge_status(charge.gateway_charge_id)

        assert result.new_status == PaymentStatus.CANCELLED

    async def test_sync_unknown_local_charge(self, tenant, db_session, payment_service_factory):
        with pytest.raises(ChargeNotFound):
            await payment_service_factory(db_session).sync_charge_status("pay_nope")

    async def test_sync_all_counts_updates_and_errors(self, charge, tenant, db_session, fake_asaas, payment_service_factory):
        service = payment_service_factory(db_session)
        second = await service.create_charge(tenant.id, Decimal("50"), PaymentMethod.BOLETO, "Avulso")
        fake_asaas.set_status(second.gateway_charge_id, "OVERDUE")

        summary = await service.sync_all_charges()
        assert (summary.total, summary.synced, summary.errors) == (2, 1, 0)

        fake_asaas.fail_with = 503
        summary = await service.sync_all_charges()
        assert (summary.total, summary.synced, summary.errors) == (2, 0, 2)

    async def test_cancel_pending_charge(self, charge, db_session, fake_asaas, payment_service_factory):
        service = payment_service_factory(db_session)

        payment = await service.cancel_charge(charge.gateway_charge_id)

        assert payment.status == PaymentStatus.CANCELLED.value
        assert fake_asaas.charges[charge.gateway_charge_id]["status"] == "DELETED"

    async def test_cancel_confirmed_charge_is_rejected(self, charge, db_session, payment_service_factory):
        service = payment_service_factory(db_session)
        await service.process_webhook(GatewayName.ASAAS, received(charge.gateway_charge_id), ASAAS_WEBHOOK_TOKEN)

        with pytest.raises(InvalidStateError):
            await service.cancel_charge(charge.gateway_charge_id)


class TestTransitionTable:

    @pytest.mark.parametrize(
        "current,new,allowed",
        [
            (PaymentStatus.PENDING, PaymentStatus.CONFIRMED, True),
            (PaymentStatus.PENDING, PaymentStatus.OVERDUE, True),
            (PaymentStatus.PENDING, PaymentStatus.FAILED, True),
            (PaymentStatus.CONFIRMED, PaymentStatus.REFUNDED, True),
            (PaymentStatus.CONFIRMED, PaymentStatus.PENDING, False),
            (PaymentStatus.CANCELLED, PaymentStatus.CONFIRMED, False),
            (PaymentStatus.REFUNDED, PaymentStatus.CONFIRMED, False),
            (PaymentStatus.OVERDUE, PaymentStatus.CONFIRMED, False),
        ],
    )
    def test_transitions(self, current, new, allowed):
        assert is_transition_allowed(current, new) is allowed

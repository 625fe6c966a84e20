# backend/app/services/payment/payment_service.py
"""
Payment ledger and reconciler.

Owns the local view of every charge. Status changes arrive from webhooks,
from direct polling (sync) or from cancellation, and all of them go through
the same transition table. Side effects (paid_at, subscription extension)
only run when the stored status actually changes, so replays are no-ops.
"""
import hmac
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import (
    CHARGE_TRANSITIONS,
    OPEN_CHARGE_STATUSES,
    BillingCycle,
    GatewayName,
    PaymentMethod,
    PaymentStatus,
    SubscriptionStatus,
)
from app.core.exceptions import (
    AuthError,
    ChargeNotFound,
    ConfigurationError,
    GatewayError,
    InvalidStateError,
    MalformedPayload,
    TenantNotFound,
)
from app.core.logging import get_logger
from app.db.base import utcnow
from app.db.models.payment import Payment
from app.db.models.tenant import Tenant
from app.db.repositories.audit_log_repository import AuditLogRepository
from app.db.repositories.payment_repository import PaymentRepository
from app.db.repositories.subscription_repository import SubscriptionRepository
from app.db.repositories.tenant_repository import TenantRepository
from app.services.payment.base import CreateChargeParams, CustomerAddress, CustomerInfo
from app.services.payment.gateway_config import (
    GATEWAY_CLASSES,
    GatewaySettings,
    build_gateway,
    gateway_settings_cache,
)
from app.services.payment.locks import KeyedLock, charge_locks
from app.services.subscription_service import SubscriptionService

logger = get_logger("payment.ledger")


@dataclass
class SyncResult:
    gateway_charge_id: str
    previous_status: PaymentStatus
    new_status: PaymentStatus
    updated: bool
    rejected: bool = False


@dataclass
class SyncSummary:
    total: int
    synced: int
    errors: int


@dataclass
class WebhookOutcome:
    processed: bool
    message: str


def is_transition_allowed(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in CHARGE_TRANSITIONS.get(current, frozenset())


class PaymentService:
    """Service for charge creation and reconciliation"""

    def __init__(
        self,
        session: AsyncSession,
        gateway_settings: Optional[GatewaySettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
        locks: KeyedLock = charge_locks,
    ):
        self.session = session
        self._gateway_settings = gateway_settings
        self.transport = transport
        self.clock = clock
        self.locks = locks
        self.payments = PaymentRepository(session)
        self.tenants = TenantRepository(session)
        self.subscriptions = SubscriptionRepository(session)
        self.audit = AuditLogRepository(session)

    async def gateway_settings(self) -> GatewaySettings:
        if self._gateway_settings is None:
            self._gateway_settings = await gateway_settings_cache.get(self.session)
        return self._gateway_settings

    async def _gateway_for(self, provider: Optional[GatewayName] = None):
        return build_gateway(await self.gateway_settings(), provider, transport=self.transport)

    @staticmethod
    def customer_for(tenant: Tenant) -> CustomerInfo:
        """Billing identity of a tenant, from its directory metadata"""
        meta: Dict[str, Any] = tenant.extra_data or {}
        address = meta.get("address")
        return CustomerInfo(
            name=tenant.name,
            email=meta.get("billing_email") or meta.get("email"),
            tax_id=tenant.cnpj,
            phone=meta.get("phone"),
            address=CustomerAddress(**address) if isinstance(address, dict) else None,
        )

    # ---------------------------------------------------------------- create

    async def create_charge(
        self,
        tenant_id: str,
        amount: Decimal,
        payment_method: PaymentMethod,
        description: str,
        billing_cycle: Optional[BillingCycle] = None,
        due_date: Optional[date] = None,
    ) -> Payment:
        """
        Create the charge at the active gateway and record it as pending.

        Not retried: a failure after the gateway accepted the request could
        otherwise bill the tenant twice.
        """
        tenant = await self.tenants.get_by_id(tenant_id)
        if tenant is None:
            raise TenantNotFound(f"Tenant {tenant_id} not found")

        # Raises ConfigurationError before any HTTP call or persistence
        gateway = await self._gateway_for()

        due = due_date or (self.clock() + timedelta(days=settings.DEFAULT_CHARGE_DUE_DAYS)).date()
        params = CreateChargeParams(
            tenant_id=tenant.id,
            amount=Decimal(amount),
            description=description,
            payment_method=PaymentMethod(payment_method),
            due_date=due,
            customer=self.customer_for(tenant),
            external_reference=f"{tenant.id}-{int(self.clock().timestamp() * 1000)}",
        )
        result = await gateway.create_charge(params)

        payment = Payment(
            tenant_id=tenant.id,
            amount=params.amount,
            currency="BRL",
            payment_method=params.payment_method.value,
            gateway=gateway.name.value,
            gateway_charge_id=result.id,
            status=PaymentStatus.PENDING.value,
            description=description,
            billing_cycle=BillingCycle(billing_cycle).value if billing_cycle else None,
            due_date=result.due_date or due,
            pix_qr_code=result.pix_qr_code,
            pix_qr_code_base64=result.pix_qr_code_base64,
            boleto_url=result.boleto_url,
            payment_link=result.payment_link,
            raw_response=result.raw_response,
        )
        self.session.add(payment)
        await self.session.flush()
        self.audit.record(
            action="charge.create",
            tenant_id=tenant.id,
            resource_type="charge",
            resource_id=payment.gateway_charge_id,
            details={
                "gateway": payment.gateway,
                "amount": str(payment.amount),
                "payment_method": payment.payment_method,
                "remote_status": result.status.value,
            },
        )
        await self.session.commit()

        logger.info(
            f"Charge {payment.gateway_charge_id} created for {payment.amount} via {payment.gateway}",
            extra={"tenant_id": tenant.id, "charge_id": payment.gateway_charge_id, "gateway": payment.gateway},
        )
        return payment

    # ------------------------------------------------------------------ read

    async def get_charge(self, charge_id: str, tenant_id: Optional[str] = None) -> Payment:
        """Look up by local id or gateway charge id"""
        payment = await self.payments.get(charge_id)
        if payment is None:
            payment = await self.payments.get_by_gateway_charge_id(charge_id)
        if payment is None or (tenant_id and payment.tenant_id != tenant_id):
            raise ChargeNotFound(f"Charge {charge_id} not found")
        return payment

    async def list_charges(self, tenant_id: str, skip: int = 0, limit: int = 50) -> List[Payment]:
        return await self.payments.list_by_tenant(tenant_id, skip=skip, limit=limit)

    # ----------------------------------------------------------- transitions

    async def _apply_status(self, payment: Payment, new_status: PaymentStatus, source: str) -> SyncResult:
        """Apply one transition to a row-locked charge; the caller commits"""
        current = PaymentStatus(payment.status)
        log_extra = {
            "tenant_id": payment.tenant_id,
            "charge_id": payment.gateway_charge_id,
            "gateway": payment.gateway,
        }

        if new_status == current:
            return SyncResult(payment.gateway_charge_id, current, current, updated=False)

        if not is_transition_allowed(current, new_status):
            logger.warning(
                f"Rejected charge transition {current.value} -> {new_status.value} from {source}",
                extra=log_extra,
            )
            self.audit.record(
                action="charge.transition_rejected",
                tenant_id=payment.tenant_id,
                resource_type="charge",
                resource_id=payment.gateway_charge_id,
                details={"from": current.value, "to": new_status.value, "source": source},
            )
            return SyncResult(payment.gateway_charge_id, current, current, updated=False, rejected=True)

        payment.status = new_status.value
        if new_status == PaymentStatus.CONFIRMED:
            payment.paid_at = self.clock()

        self.audit.record(
            action="charge.transition",
            tenant_id=payment.tenant_id,
            resource_type="charge",
            resource_id=payment.gateway_charge_id,
            details={"from": current.value, "to": new_status.value, "source": source},
        )
        logger.info(f"Charge {current.value} -> {new_status.value} ({source})", extra=log_extra)

        if new_status == PaymentStatus.CONFIRMED:
            await self._extend_subscription(payment)

        return SyncResult(payment.gateway_charge_id, current, new_status, updated=True)

    async def _extend_subscription(self, payment: Payment) -> None:
        subscription = await self.subscriptions.get_by_tenant(payment.tenant_id, for_update=True)
        if subscription is None:
            logger.warning(
                "Confirmed charge has no subscription to extend",
                extra={"tenant_id": payment.tenant_id, "charge_id": payment.gateway_charge_id},
            )
            return
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            logger.warning(
                "Confirmed charge for a cancelled subscription; not extending",
                extra={"tenant_id": payment.tenant_id, "charge_id": payment.gateway_charge_id},
            )
            return

        await SubscriptionService(self.session, clock=self.clock).extend_for_payment(
            subscription, payment.billing_cycle, charge_id=payment.gateway_charge_id
        )

    async def _reconcile(
        self, gateway_charge_id: str, gateway: Optional[str], new_status: PaymentStatus, source: str
    ) -> Optional[SyncResult]:
        """Serialized per charge: in-process lock plus a row lock in the transaction"""
        async with self.locks.hold(gateway_charge_id):
            payment = await self.payments.get_by_gateway_charge_id(
                gateway_charge_id, gateway=gateway, for_update=True
            )
            if payment is None:
                await self.session.rollback()
                return None
            try:
                result = await self._apply_status(payment, new_status, source)
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise
            return result

    # ------------------------------------------------------------------ sync

    async def sync_charge_status(self, gateway_charge_id: str) -> SyncResult:
        """Poll the gateway and apply whatever changed (admin force-sync, periodic job)"""
        payment = await self.payments.get_by_gateway_charge_id(gateway_charge_id)
        if payment is None:
            raise ChargeNotFound(f"Charge {gateway_charge_id} not found")

        gateway = await self._gateway_for(GatewayName(payment.gateway))
        # No lock is held while the gateway call is in flight
        try:
            remote = (await gateway.get_charge_status(gateway_charge_id)).status
        except GatewayError as e:
            if not e.is_not_found:
                raise
            logger.warning(
                "Charge not found at gateway, treating as cancelled",
                extra={"charge_id": gateway_charge_id, "gateway": payment.gateway},
            )
            remote = PaymentStatus.CANCELLED

        result = await self._reconcile(gateway_charge_id, payment.gateway, remote, source="sync")
        if result is None:
            raise ChargeNotFound(f"Charge {gateway_charge_id} not found")
        return result

    async def sync_all_charges(self) -> SyncSummary:
        """Reconcile every pending/overdue charge; per-charge failures are counted"""
        open_charges = await self.payments.list_by_status([s.value for s in OPEN_CHARGE_STATUSES])
        charge_ids = [p.gateway_charge_id for p in open_charges]

        synced = errors = 0
        for gateway_charge_id in charge_ids:
            try:
                result = await self.sync_charge_status(gateway_charge_id)
            except (GatewayError, ConfigurationError) as e:
                errors += 1
                logger.error(
                    f"Failed to sync charge: {e.message}",
                    extra={"charge_id": gateway_charge_id},
                )
                continue
            if result.updated:
                synced += 1

        logger.info(f"Charge sync finished: {synced}/{len(charge_ids)} updated, {errors} errors")
        return SyncSummary(total=len(charge_ids), synced=synced, errors=errors)

    async def cancel_charge(self, gateway_charge_id: str, tenant_id: Optional[str] = None) -> Payment:
        payment = await self.payments.get_by_gateway_charge_id(gateway_charge_id)
        if payment is None or (tenant_id and payment.tenant_id != tenant_id):
            raise ChargeNotFound(f"Charge {gateway_charge_id} not found")
        if PaymentStatus(payment.status) not in OPEN_CHARGE_STATUSES:
            raise InvalidStateError(f"Cannot cancel a charge in status {payment.status}")

        gateway = await self._gateway_for(GatewayName(payment.gateway))
        await gateway.cancel_charge(gateway_charge_id)

        await self._reconcile(gateway_charge_id, payment.gateway, PaymentStatus.CANCELLED, source="cancel")
        return payment

    # --------------------------------------------------------------- webhook

    def verify_webhook_token(self, provider: GatewayName, snapshot: GatewaySettings, token: Optional[str]) -> None:
        expected = snapshot.webhook_token(provider)
        if not expected:
            if settings.is_production or settings.WEBHOOK_REQUIRE_TOKEN:
                raise AuthError(f"Webhook token for {provider.value} is not configured")
            logger.warning(
                "Webhook token not configured; accepting unauthenticated webhook",
                extra={"gateway": provider.value},
            )
            return
        if not token or not hmac.compare_digest(token.encode(), expected.encode()):
            logger.warning("Invalid webhook token", extra={"gateway": provider.value})
            raise AuthError("Invalid webhook token")

    async def process_webhook(
        self, provider: GatewayName, payload: Any, token: Optional[str]
    ) -> WebhookOutcome:
        """
        Reconcile one provider callback.

        Order: token check, parse, local lookup, canonical mapping, transition.
        Unknown charges and ignored events are acknowledged so the provider
        stops retrying.
        """
        provider = GatewayName(provider)
        snapshot = await self.gateway_settings()
        self.verify_webhook_token(provider, snapshot, token)

        if not isinstance(payload, dict):
            raise MalformedPayload("Webhook payload must be a JSON object")
        event = GATEWAY_CLASSES[provider].parse_webhook(payload)

        log_extra = {"charge_id": event.charge_id, "gateway": provider.value}
        logger.info(f"Webhook received: {event.event}", extra=log_extra)

        if event.status is None:
            return WebhookOutcome(False, f"Event {event.event} ignored")

        result = await self._reconcile(event.charge_id, provider.value, event.status, source=f"webhook:{event.event}")
        if result is None:
            logger.warning("Webhook for unknown charge", extra=log_extra)
            return WebhookOutcome(False, "Payment not found locally")
        if result.rejected:
            return WebhookOutcome(
                False, f"Transition {result.previous_status.value} -> {event.status.value} rejected"
            )
        if not result.updated:
            return WebhookOutcome(False, f"Charge already {result.new_status.value}")
        return WebhookOutcome(
            True, f"Charge {result.previous_status.value} -> {result.new_status.value}"
        )

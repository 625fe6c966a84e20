# backend/app/services/payment/infinitypay_gateway.py
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.constants import GatewayName, PaymentStatus
from app.services.payment.base import (
    ChargeResult,
    CreateChargeParams,
    PaymentGateway,
    WebhookEvent,
    parse_date,
)

CENTS = Decimal("100")


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * CENTS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(value: Any) -> Decimal:
    return (Decimal(str(value or 0)) / CENTS).quantize(Decimal("0.01"))


class InfinityPayGateway(PaymentGateway):
    """InfinityPay charges API adapter (amounts travel in cents)"""

    name = GatewayName.INFINITYPAY

    STATUS_MAP = {
        "PENDING": PaymentStatus.PENDING,
        "WAITING_PAYMENT": PaymentStatus.PENDING,
        "PAID": PaymentStatus.CONFIRMED,
        "CONFIRMED": PaymentStatus.CONFIRMED,
        "EXPIRED": PaymentStatus.OVERDUE,
        "CANCELED": PaymentStatus.CANCELLED,
        "CANCELLED": PaymentStatus.CANCELLED,
        "REFUNDED": PaymentStatus.REFUNDED,
        "FAILED": PaymentStatus.FAILED,
    }

    EVENT_MAP = {
        "CHARGE_PAID": PaymentStatus.CONFIRMED,
        "PAYMENT_CONFIRMED": PaymentStatus.CONFIRMED,
        "CHARGE_EXPIRED": PaymentStatus.OVERDUE,
        "PAYMENT_FAILED": PaymentStatus.FAILED,
        "CHARGE_CANCELED": PaymentStatus.CANCELLED,
        "CHARGE_REFUNDED": PaymentStatus.REFUNDED,
    }

    def __init__(
        self,
        api_key: str,
        merchant_id: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {
            "Authorization": f"Bearer {api_key}",
            "X-Secret-Key": merchant_id,
        }
        super().__init__(
            base_url or settings.INFINITYPAY_BASE_URL, headers, timeout=timeout, transport=transport
        )

    def _to_result(self, data: Dict[str, Any], fallback_due: Optional[date] = None) -> ChargeResult:
        return ChargeResult(
            id=str(data["id"]),
            status=self.map_status(data.get("status")),
            value=from_cents(data.get("amount")),
            due_date=parse_date(data.get("due_date")) or fallback_due,
            payment_link=data.get("payment_link"),
            pix_qr_code=data.get("pix_qrcode"),
            pix_qr_code_base64=data.get("pix_qrcode_base64"),
            boleto_url=data.get("boleto_url"),
            raw_response=data,
        )

    async def create_charge(self, params: CreateChargeParams) -> ChargeResult:
        # Customers are embedded in the charge and keyed by document,
        # so a retried request never registers a second customer.
        payload = {
            "amount": to_cents(params.amount),
            "payment_method": params.payment_method.value.lower(),
            "description": params.description,
            "due_date": params.due_date.isoformat(),
            "customer": {
                "name": params.customer.name,
                "email": params.customer.email,
                "document": params.customer.tax_id,
                "phone": params.customer.phone,
            },
            "metadata": {
                "tenantId": params.tenant_id,
                "externalReference": params.external_reference,
            },
        }
        data = await self._request("POST", "/charges", json=payload)
        return self._to_result(data, fallback_due=params.due_date)

    async def get_charge_status(self, gateway_charge_id: str) -> ChargeResult:
        data = await self._request("GET", f"/charges/{gateway_charge_id}")
        return self._to_result(data)

    async def cancel_charge(self, gateway_charge_id: str) -> None:
        await self._request("DELETE", f"/charges/{gateway_charge_id}")

    @classmethod
    def parse_webhook(cls, payload: Dict[str, Any]) -> WebhookEvent:
        event = cls._require(payload, "event")
        charge_id = cls._require(payload, "charge", "id")
        status_code = (payload.get("charge") or {}).get("status")
        return WebhookEvent(
            charge_id=str(charge_id),
            event=str(event),
            status=cls.map_event(event, status_code),
        )

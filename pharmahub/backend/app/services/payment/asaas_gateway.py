# backend/app/services/payment/asaas_gateway.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from app.core.constants import GatewayName, PaymentMethod, PaymentStatus
from app.services.payment.base import (
    ChargeResult,
    CreateChargeParams,
    CustomerInfo,
    PaymentGateway,
    WebhookEvent,
    logger,
    parse_date,
)

ASAAS_PRODUCTION_URL = "https://www.asaas.com/api/v3"
ASAAS_SANDBOX_URL = "https://sandbox.asaas.com/api/v3"


class AsaasGateway(PaymentGateway):
    """Asaas REST API v3 adapter"""

    name = GatewayName.ASAAS

    STATUS_MAP = {
        "PENDING": PaymentStatus.PENDING,
        "RECEIVED": PaymentStatus.CONFIRMED,
        "CONFIRMED": PaymentStatus.CONFIRMED,
        "RECEIVED_IN_CASH": PaymentStatus.CONFIRMED,
        "OVERDUE": PaymentStatus.OVERDUE,
        "REFUNDED": PaymentStatus.REFUNDED,
        "CANCELLED": PaymentStatus.CANCELLED,
        "DELETED": PaymentStatus.CANCELLED,
    }

    EVENT_MAP = {
        "PAYMENT_RECEIVED": PaymentStatus.CONFIRMED,
        "PAYMENT_CONFIRMED": PaymentStatus.CONFIRMED,
        "PAYMENT_OVERDUE": PaymentStatus.OVERDUE,
        "PAYMENT_DELETED": PaymentStatus.CANCELLED,
        "PAYMENT_REFUNDED": PaymentStatus.REFUNDED,
    }

    def __init__(
        self,
        api_key: str,
        environment: str = "sandbox",
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base_url = ASAAS_PRODUCTION_URL if environment == "production" else ASAAS_SANDBOX_URL
        super().__init__(base_url, {"access_token": api_key}, timeout=timeout, transport=transport)
        self.environment = environment

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        errors = body.get("errors") if isinstance(body, dict) else None
        if isinstance(errors, list) and errors:
            return ", ".join(str(e.get("description", e)) for e in errors)
        return super()._error_message(response)

    async def ensure_customer(self, customer: CustomerInfo) -> str:
        """Reuse the provider customer with this tax id, creating it only once"""
        search = await self._request("GET", "/customers", params={"cpfCnpj": customer.tax_id})
        existing = search.get("data") or []
        if existing:
            return existing[0]["id"]

        payload: Dict[str, Any] = {
            "name": customer.name,
            "cpfCnpj": customer.tax_id,
            "email": customer.email,
            "phone": customer.phone,
        }
        if customer.address:
            payload.update({
                "address": customer.address.street,
                "addressNumber": customer.address.number,
                "complement": customer.address.complement,
                "province": customer.address.district,
                "postalCode": customer.address.zip_code,
            })

        created = await self._request("POST", "/customers", json=payload)
        logger.info(
            f"Created Asaas customer {created.get('id')}",
            extra={"gateway": self.name.value},
        )
        return created["id"]

    def _to_result(self, charge: Dict[str, Any], pix: Optional[Dict[str, Any]] = None) -> ChargeResult:
        pix = pix or charge.get("pixQrCode") or {}
        return ChargeResult(
            id=charge["id"],
            status=self.map_status(charge.get("status")),
            value=Decimal(str(charge.get("value", 0))),
            due_date=parse_date(charge.get("dueDate")),
            payment_link=charge.get("invoiceUrl") or charge.get("paymentLink"),
            boleto_url=charge.get("bankSlipUrl"),
            pix_qr_code=pix.get("payload"),
            pix_qr_code_base64=pix.get("encodedImage"),
            raw_response=charge,
        )

    async def create_charge(self, params: CreateChargeParams) -> ChargeResult:
        customer_id = await self.ensure_customer(params.customer)

        payload = {
            "customer": customer_id,
            "value": float(params.amount),
            "dueDate": params.due_date.isoformat(),
            "description": params.description,
            "billingType": params.payment_method.value,
            "externalReference": params.external_reference
            or f"{params.tenant_id}-{int(datetime.now().timestamp() * 1000)}",
        }
        charge = await self._request("POST", "/payments", json=payload)

        pix = None
        if params.payment_method == PaymentMethod.PIX and not charge.get("pixQrCode"):
            pix = await self._request("GET", f"/payments/{charge['id']}/pixQrCode")

        return self._to_result(charge, pix)

    async def get_charge_status(self, gateway_charge_id: str) -> ChargeResult:
        charge = await self._request("GET", f"/payments/{gateway_charge_id}")
        return self._to_result(charge)

    async def cancel_charge(self, gateway_charge_id: str) -> None:
        await self._request("DELETE", f"/payments/{gateway_charge_id}")

    async def list_charges(self, offset: int = 0, limit: int = 100, customer: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"offset": offset, "limit": limit}
        if customer:
            params["customer"] = customer
        return await self._request("GET", "/payments", params=params)

    @classmethod
    def parse_webhook(cls, payload: Dict[str, Any]) -> WebhookEvent:
        event = cls._require(payload, "event")
        charge_id = cls._require(payload, "payment", "id")
        status_code = (payload.get("payment") or {}).get("status")
        return WebhookEvent(
            charge_id=str(charge_id),
            event=str(event),
            status=cls.map_event(event, status_code),
        )

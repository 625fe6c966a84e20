# backend/app/services/payment/base.py
"""
Payment gateway interface.

Adapters translate a provider's authentication, URL scheme and status
vocabulary into the canonical ``ChargeResult``; the ledger never sees a
provider status code.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.constants import GatewayName, PaymentMethod, PaymentStatus
from app.core.exceptions import GatewayError, MalformedPayload
from app.core.logging import get_logger

logger = get_logger("payment")


@dataclass
class CustomerAddress:
    street: str
    number: str
    district: str
    city: str
    state: str
    zip_code: str
    complement: Optional[str] = None


@dataclass
class CustomerInfo:
    name: str
    email: Optional[str]
    tax_id: str
    phone: Optional[str] = None
    address: Optional[CustomerAddress] = None


@dataclass
class CreateChargeParams:
    tenant_id: str
    amount: Decimal
    description: str
    payment_method: PaymentMethod
    due_date: date
    customer: CustomerInfo
    external_reference: Optional[str] = None


@dataclass
class ChargeResult:
    id: str
    status: PaymentStatus
    value: Decimal
    due_date: Optional[date] = None
    payment_link: Optional[str] = None
    boleto_url: Optional[str] = None
    pix_qr_code: Optional[str] = None
    pix_qr_code_base64: Optional[str] = None
    raw_response: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
    """Provider callback reduced to charge id + canonical status (None = ignore)"""

    charge_id: str
    event: str
    status: Optional[PaymentStatus]


def parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


class PaymentGateway(ABC):
    """Base class for provider adapters"""

    name: GatewayName
    # Provider status code -> canonical status
    STATUS_MAP: Dict[str, PaymentStatus] = {}
    # Provider webhook event -> canonical status
    EVENT_MAP: Dict[str, PaymentStatus] = {}

    def __init__(
        self,
        base_url: str,
        headers: Dict[str, str],
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"Content-Type": "application/json", **headers}
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS
        self.transport = transport

    @classmethod
    def map_status(cls, code: Optional[str]) -> PaymentStatus:
        """Single translation point; unknown codes stay pending"""
        status = cls.STATUS_MAP.get((code or "").upper())
        if status is None:
            logger.warning(
                f"Unmapped {cls.name.value} status '{code}', treating as pending",
                extra={"gateway": cls.name.value},
            )
            return PaymentStatus.PENDING
        return status

    @classmethod
    def map_event(cls, event: Optional[str], status_code: Optional[str] = None) -> Optional[PaymentStatus]:
        """Canonical status for a webhook event; falls back to the payload status"""
        status = cls.EVENT_MAP.get((event or "").upper())
        if status is not None:
            return status
        if status_code:
            return cls.map_status(status_code)
        return None

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Single HTTP call, no retry; failures become GatewayError"""
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                f"{self.name.value} request {method} {path} failed: {e}",
                extra={"gateway": self.name.value},
            )
            raise GatewayError(self.name.value, str(e) or e.__class__.__name__) from e

        if response.is_error:
            message = self._error_message(response)
            logger.error(
                f"{self.name.value} returned {response.status_code} for {method} {path}: {message}",
                extra={"gateway": self.name.value},
            )
            raise GatewayError(self.name.value, message, upstream_status=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(self.name.value, "Invalid JSON response", response.status_code) from e

    @staticmethod
    def _require(payload: Dict[str, Any], *keys: str) -> Any:
        """Walk nested keys of a webhook payload or fail as malformed"""
        node: Any = payload
        for key in keys:
            if not isinstance(node, dict) or not node.get(key):
                raise MalformedPayload(f"Webhook payload missing '{'.'.join(keys)}'")
            node = node[key]
        return node

    @abstractmethod
    async def create_charge(self, params: CreateChargeParams) -> ChargeResult:
        ...

    @abstractmethod
    async def get_charge_status(self, gateway_charge_id: str) -> ChargeResult:
        ...

    @abstractmethod
    async def cancel_charge(self, gateway_charge_id: str) -> None:
        ...

    @classmethod
    @abstractmethod
    def parse_webhook(cls, payload: Dict[str, Any]) -> WebhookEvent:
        ...

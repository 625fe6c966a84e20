# backend/app/schemas/billing.py
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.constants import BillingCycle, PaymentMethod, PaymentStatus


class ChargeCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod
    description: str = Field(..., min_length=1, max_length=500)
    billing_cycle: Optional[BillingCycle] = None
    due_date: Optional[date] = None


class Charge(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    amount: float
    currency: str
    payment_method: str
    gateway: str
    gateway_charge_id: str
    status: str
    description: Optional[str] = None
    billing_cycle: Optional[str] = None
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    pix_qr_code: Optional[str] = None
    pix_qr_code_base64: Optional[str] = None
    boleto_url: Optional[str] = None
    payment_link: Optional[str] = None
    created_at: datetime


class SyncResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gateway_charge_id: str
    previous_status: PaymentStatus
    new_status: PaymentStatus
    updated: bool
    rejected: bool = False


class SyncSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    synced: int
    errors: int


class WebhookAck(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    processed: bool
    message: str


class ChargeList(BaseModel):
    items: List[Charge]
    count: int

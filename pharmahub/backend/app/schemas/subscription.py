# backend/app/schemas/subscription.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.constants import BillingCycle, SubscriptionStatus


class Plan(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    price_monthly: float
    price_annual: float
    max_users: int
    max_products: int
    max_monthly_transactions: int
    max_storage_gb: int
    max_api_calls_per_minute: int
    features: List[str] = Field(default_factory=list)
    is_highlighted: bool = False


class Subscription(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    plan_id: str
    start_date: datetime
    end_date: datetime
    status: str
    billing_cycle: str
    auto_renew: bool
    trial_end_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    suspended_reason: Optional[str] = None


class SubscriptionInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subscription: Subscription
    plan: Plan
    status: SubscriptionStatus
    days_until_expiration: int
    is_expiring_soon: bool
    is_expired: bool


class RenewRequest(BaseModel):
    months: int = Field(1, ge=1, le=36)
    billing_cycle: Optional[BillingCycle] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SuspendRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class ChangePlanRequest(BaseModel):
    plan: str = Field(..., description="Plan id or name")


class ExpiringSubscription(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subscription: Subscription
    days_left: int
    urgency: str

# backend/app/db/models/subscription.py
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from app.db.base import BaseModel, new_id
from app.core.constants import SubscriptionStatus, BillingCycle


class Subscription(BaseModel):
    """Billing state of a tenant (exactly one per tenant)"""
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), unique=True, nullable=False, index=True)
    plan_id = Column(String(36), ForeignKey("plans.id"), nullable=False, index=True)

    start_date = Column(DateTime, nullable=False)
    # Sole authority for time-based expiry
    end_date = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), default=SubscriptionStatus.TRIAL.value, nullable=False, index=True)
    billing_cycle = Column(String(20), default=BillingCycle.MONTHLY.value, nullable=False)
    auto_renew = Column(Boolean, default=True, nullable=False)

    trial_end_date = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    suspended_reason = Column(Text, nullable=True)

    plan = relationship("Plan", lazy="selectin")

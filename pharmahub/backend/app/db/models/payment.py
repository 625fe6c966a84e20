# backend/app/db/models/payment.py
from sqlalchemy import Column, String, DateTime, Date, ForeignKey, JSON, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.base import BaseModel, new_id
from app.core.constants import PaymentStatus


class Payment(BaseModel):
    """Charge ledger entry; rows are never deleted"""
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("gateway", "gateway_charge_id", name="uq_payments_gateway_charge"),
    )

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default="BRL", nullable=False)
    payment_method = Column(String(20), nullable=False)
    gateway = Column(String(20), nullable=False)
    gateway_charge_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)

    description = Column(Text, nullable=True)
    billing_cycle = Column(String(20), nullable=True)
    due_date = Column(Date, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    # Presentation artifacts, stored as returned by the gateway
    pix_qr_code = Column(Text, nullable=True)
    pix_qr_code_base64 = Column(Text, nullable=True)
    boleto_url = Column(Text, nullable=True)
    payment_link = Column(Text, nullable=True)
    raw_response = Column(JSON, default=dict)

    tenant = relationship("Tenant", back_populates="payments", lazy="noload")

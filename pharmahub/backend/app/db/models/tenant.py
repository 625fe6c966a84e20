# backend/app/db/models/tenant.py
from sqlalchemy import Column, String, JSON, DateTime, Text
from sqlalchemy.orm import relationship
from app.db.base import BaseModel, new_id
from app.core.constants import TenantStatus


class Tenant(BaseModel):
    """Tenant directory entry: identity plus credentials of its isolated database"""
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    cnpj = Column(String(18), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), default=TenantStatus.ACTIVE.value, nullable=False, index=True)

    # Isolated database
    database_name = Column(String(100), nullable=False)
    database_user = Column(String(100), nullable=False)
    database_password_enc = Column(Text, nullable=True)

    # Denormalized subscription cache for fast gating
    plan = Column(String(50), nullable=True)
    subscription_status = Column(String(20), nullable=True)
    subscription_end = Column(DateTime, nullable=True)

    modules_enabled = Column(JSON, default=list)
    # billing_email, phone, address, gateway customer ids
    extra_data = Column("metadata", JSON, default=dict)

    payments = relationship("Payment", back_populates="tenant", lazy="noload")

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value

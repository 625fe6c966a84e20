# backend/app/db/models/plan.py
from sqlalchemy import Column, String, Integer, Boolean, JSON, Numeric, Text
from app.db.base import BaseModel, new_id


class Plan(BaseModel):
    """Plan catalog entry with numeric quotas and feature flags"""
    __tablename__ = "plans"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    price_monthly = Column(Numeric(12, 2), nullable=False, default=0)
    price_annual = Column(Numeric(12, 2), nullable=False, default=0)

    # Quotas (>= 999999 means unlimited)
    max_users = Column(Integer, nullable=False, default=1)
    max_products = Column(Integer, nullable=False, default=0)
    max_monthly_transactions = Column(Integer, nullable=False, default=0)
    max_storage_gb = Column(Integer, nullable=False, default=0)
    max_api_calls_per_minute = Column(Integer, nullable=False, default=60)

    features = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    is_highlighted = Column(Boolean, default=False, nullable=False)

# backend/app/schemas/tenant.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List
from datetime import datetime

from app.core.constants import BillingCycle


class TenantBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TenantCreate(TenantBase):
    cnpj: str = Field(..., min_length=11, max_length=18)
    plan: str = "starter"
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    database_name: Optional[str] = None
    database_user: Optional[str] = None
    database_password: Optional[str] = Field(None, repr=False)
    modules: Optional[List[str]] = None
    billing_email: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Tenant(TenantBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cnpj: str
    status: str
    database_name: str
    plan: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_end: Optional[datetime] = None
    modules_enabled: List[str] = Field(default_factory=list)
    created_at: datetime


class ModuleStatus(BaseModel):
    id: str
    description: str
    enabled: bool


class ModuleToggle(BaseModel):
    module: str = Field(..., min_length=1, max_length=50)
    enabled: bool

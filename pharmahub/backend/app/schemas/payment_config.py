# backend/app/schemas/payment_config.py
from typing import Optional

from pydantic import BaseModel, Field

from app.core.constants import GatewayName


class PaymentConfigUpdate(BaseModel):
    """Empty or missing secrets leave the stored value unchanged"""

    active_gateway: Optional[GatewayName] = None
    asaas_environment: Optional[str] = Field(None, pattern="^(sandbox|production)$")
    asaas_api_key: Optional[str] = Field(None, repr=False)
    asaas_webhook_token: Optional[str] = Field(None, repr=False)
    infinitypay_merchant_id: Optional[str] = Field(None, repr=False)
    infinitypay_api_key: Optional[str] = Field(None, repr=False)
    infinitypay_public_key: Optional[str] = Field(None, repr=False)
    infinitypay_webhook_secret: Optional[str] = Field(None, repr=False)


class PaymentConfig(BaseModel):
    active_gateway: str
    asaas_environment: str
    asaas_api_key_masked: Optional[str] = None
    asaas_webhook_token_masked: Optional[str] = None
    infinitypay_merchant_id_masked: Optional[str] = None
    infinitypay_api_key_masked: Optional[str] = None
    infinitypay_public_key_masked: Optional[str] = None
    infinitypay_webhook_secret_masked: Optional[str] = None

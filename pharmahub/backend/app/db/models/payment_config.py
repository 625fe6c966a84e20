# backend/app/db/models/payment_config.py
from sqlalchemy import Column, String, Text
from app.db.base import BaseModel

GLOBAL_CONFIG_ID = "global"


class GlobalPaymentConfig(BaseModel):
    """Singleton row holding gateway selection and encrypted credentials"""
    __tablename__ = "global_payment_config"

    id = Column(String(20), primary_key=True, default=GLOBAL_CONFIG_ID)
    active_gateway = Column(String(20), nullable=True)
    asaas_environment = Column(String(20), nullable=True)

    asaas_api_key_enc = Column(Text, nullable=True)
    asaas_webhook_token_enc = Column(Text, nullable=True)

    infinitypay_merchant_id_enc = Column(Text, nullable=True)
    infinitypay_api_key_enc = Column(Text, nullable=True)
    infinitypay_public_key_enc = Column(Text, nullable=True)
    infinitypay_webhook_secret_enc = Column(Text, nullable=True)

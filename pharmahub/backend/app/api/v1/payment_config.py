# backend/app/api/v1/payment_config.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import require_admin
from app.db.database import get_db
from app.schemas.payment_config import PaymentConfig, PaymentConfigUpdate
from app.services.payment.gateway_config import GatewayConfigService, gateway_settings_cache

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("", response_model=PaymentConfig)
async def get_payment_config(db: AsyncSession = Depends(get_db)):
    """Current gateway configuration; secrets are masked"""
    return await GatewayConfigService(db).get_masked()


@router.put("", response_model=PaymentConfig)
async def update_payment_config(config_in: PaymentConfigUpdate, db: AsyncSession = Depends(get_db)):
    """Store new credentials and swap the in-memory snapshot"""
    masked = await GatewayConfigService(db).update(config_in.model_dump(exclude_none=True, mode="json"))
    await gateway_settings_cache.reload(db)
    return masked


@router.post("/reload", response_model=PaymentConfig)
async def reload_payment_config(db: AsyncSession = Depends(get_db)):
    await gateway_settings_cache.reload(db)
    return await GatewayConfigService(db).get_masked()

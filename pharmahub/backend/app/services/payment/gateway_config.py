# backend/app/services/payment/gateway_config.py
"""
Gateway selection and credentials.

The encrypted singleton row in the directory is read into an immutable
``GatewaySettings`` snapshot. Gateways are constructed from a snapshot;
changing credentials means updating the row and reloading the snapshot.
Every process holds its own snapshot; a snapshot older than
``GATEWAY_CONFIG_TTL_SECONDS`` is reloaded on next use, so a rotation made
through one worker reaches the others within that window.
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import GatewayName
from app.core.encryption import EncryptionService, get_encryption_service, mask_secret
from app.core.exceptions import ConfigurationError
from app.core.logging import get_logger
from app.db.models.payment_config import GlobalPaymentConfig, GLOBAL_CONFIG_ID
from app.services.payment.asaas_gateway import AsaasGateway
from app.services.payment.base import PaymentGateway
from app.services.payment.infinitypay_gateway import InfinityPayGateway

GATEWAY_CLASSES: Dict[GatewayName, Type[PaymentGateway]] = {
    GatewayName.ASAAS: AsaasGateway,
    GatewayName.INFINITYPAY: InfinityPayGateway,
}

logger = get_logger("payment.config")

# DTO field -> encrypted column
SECRET_FIELDS: Dict[str, str] = {
    "asaas_api_key": "asaas_api_key_enc",
    "asaas_webhook_token": "asaas_webhook_token_enc",
    "infinitypay_merchant_id": "infinitypay_merchant_id_enc",
    "infinitypay_api_key": "infinitypay_api_key_enc",
    "infinitypay_public_key": "infinitypay_public_key_enc",
    "infinitypay_webhook_secret": "infinitypay_webhook_secret_enc",
}


@dataclass(frozen=True)
class GatewaySettings:
    active_gateway: GatewayName = GatewayName.ASAAS
    asaas_environment: str = "sandbox"
    asaas_api_key: Optional[str] = field(default=None, repr=False)
    asaas_webhook_token: Optional[str] = field(default=None, repr=False)
    infinitypay_merchant_id: Optional[str] = field(default=None, repr=False)
    infinitypay_api_key: Optional[str] = field(default=None, repr=False)
    infinitypay_public_key: Optional[str] = field(default=None, repr=False)
    infinitypay_webhook_secret: Optional[str] = field(default=None, repr=False)

    def webhook_token(self, provider: GatewayName) -> Optional[str]:
        if provider == GatewayName.ASAAS:
            return self.asaas_webhook_token
        return self.infinitypay_webhook_secret

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        return cls(
            active_gateway=GatewayName(settings.ACTIVE_GATEWAY),
            asaas_environment=settings.ASAAS_ENVIRONMENT,
            asaas_api_key=settings.ASAAS_API_KEY,
            asaas_webhook_token=settings.ASAAS_WEBHOOK_TOKEN,
            infinitypay_merchant_id=settings.INFINITYPAY_MERCHANT_ID,
            infinitypay_api_key=settings.INFINITYPAY_API_KEY,
            infinitypay_webhook_secret=settings.INFINITYPAY_WEBHOOK_SECRET,
        )


class GatewayConfigService:
    """Reads and updates the global payment configuration row"""

    def __init__(self, session: AsyncSession, encryption: Optional[EncryptionService] = None):
        self.session = session
        self.encryption = encryption or get_encryption_service()

    async def _ensure_singleton(self) -> GlobalPaymentConfig:
        config = await self.session.get(GlobalPaymentConfig, GLOBAL_CONFIG_ID)
        if config is None:
            config = GlobalPaymentConfig(id=GLOBAL_CONFIG_ID)
            self.session.add(config)
            await self.session.commit()
        return config

    async def load_snapshot(self) -> GatewaySettings:
        """Decrypted row values, falling back to environment settings"""
        config = await self.session.get(GlobalPaymentConfig, GLOBAL_CONFIG_ID)
        env = GatewaySettings.from_env()
        if config is None:
            return env

        values: Dict[str, Any] = {}
        for name, column in SECRET_FIELDS.items():
            values[name] = self.encryption.decrypt(getattr(config, column)) or getattr(env, name)

        return GatewaySettings(
            active_gateway=GatewayName(config.active_gateway or env.active_gateway.value),
            asaas_environment=config.asaas_environment or env.asaas_environment,
            **values,
        )

    async def get_masked(self) -> Dict[str, Any]:
        snapshot = await self.load_snapshot()
        masked: Dict[str, Any] = {
            "active_gateway": snapshot.active_gateway.value,
            "asaas_environment": snapshot.asaas_environment,
        }
        for name in SECRET_FIELDS:
            masked[f"{name}_masked"] = mask_secret(getattr(snapshot, name))
        return masked

    async def update(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply non-empty values; secrets are encrypted before storage"""
        config = await self._ensure_singleton()

        if data.get("active_gateway"):
            config.active_gateway = GatewayName(data["active_gateway"]).value
        if data.get("asaas_environment"):
            config.asaas_environment = data["asaas_environment"]

        changed = []
        for name, column in SECRET_FIELDS.items():
            if data.get(name):
                setattr(config, column, self.encryption.encrypt(data[name]))
                changed.append(name)

        await self.session.commit()
        logger.info(
            "Global payment configuration updated",
            extra={"gateway": config.active_gateway, "fields": changed},
        )
        return await self.get_masked()


class GatewaySettingsCache:
    """Holds the current snapshot; replaced by reload() or once it is older than the TTL"""

    def __init__(self, ttl_seconds: Optional[float] = None):
        self.ttl_seconds = ttl_seconds
        self._snapshot: Optional[GatewaySettings] = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    def is_stale(self) -> bool:
        ttl = settings.GATEWAY_CONFIG_TTL_SECONDS if self.ttl_seconds is None else self.ttl_seconds
        return self._snapshot is None or time.monotonic() - self._loaded_at >= ttl

    async def get(self, session: AsyncSession) -> GatewaySettings:
        if self.is_stale():
            return await self.reload(session)
        return self._snapshot

    async def reload(self, session: AsyncSession) -> GatewaySettings:
        async with self._lock:
            self._snapshot = await GatewayConfigService(session).load_snapshot()
            self._loaded_at = time.monotonic()
        logger.info("Gateway configuration snapshot reloaded", extra={"gateway": self._snapshot.active_gateway.value})
        return self._snapshot

    def clear(self) -> None:
        self._snapshot = None


gateway_settings_cache = GatewaySettingsCache()


def build_gateway(
    snapshot: GatewaySettings,
    provider: Optional[GatewayName] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentGateway:
    """Adapter for the requested (or active) provider; ConfigurationError without credentials"""
    provider = provider or snapshot.active_gateway

    if provider == GatewayName.INFINITYPAY:
        if not snapshot.infinitypay_api_key or not snapshot.infinitypay_merchant_id:
            raise ConfigurationError("InfinityPay gateway not configured (API key or merchant id missing)")
        return InfinityPayGateway(
            api_key=snapshot.infinitypay_api_key,
            merchant_id=snapshot.infinitypay_merchant_id,
            transport=transport,
        )

    if not snapshot.asaas_api_key:
        raise ConfigurationError("Asaas gateway not configured (API key missing)")
    return AsaasGateway(
        api_key=snapshot.asaas_api_key,
        environment=snapshot.asaas_environment,
        transport=transport,
    )

# backend/app/core/config.py
from typing import List, Optional
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

# Locate the .env file relative to the project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent  # Goes to pharmahub root
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), extra="ignore")

    # Application
    PROJECT_NAME: str = "PharmaHub"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    ADMIN_API_KEY: Optional[str] = None
    ENCRYPTION_KEY: str = "pharmahub-dev-encryption-key"
    ENCRYPTION_SALT: str = "pharmahub-dev-salt"

    # Directory database (tenants, plans, subscriptions, payments)
    DATABASE_URL: str = "sqlite+aiosqlite:///./pharmahub.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Per-tenant databases
    TENANT_POOL_SIZE: int = 5
    TENANT_HANDLE_MAX_IDLE_SECONDS: int = 300
    TENANT_EVICTION_INTERVAL_SECONDS: int = 60

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    SUBSCRIPTION_SWEEP_CRON_HOUR: int = 3
    PAYMENT_SYNC_INTERVAL_SECONDS: int = 300

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    # Subscriptions
    DEFAULT_TRIAL_DAYS: int = 14
    SUBSCRIPTION_EXPIRING_SOON_DAYS: int = 7

    # Payment gateways (fallbacks for the encrypted global config row)
    ACTIVE_GATEWAY: str = "asaas"
    PAYMENT_GATEWAY_TIMEOUT_SECONDS: float = 10.0
    DEFAULT_CHARGE_DUE_DAYS: int = 3
    WEBHOOK_REQUIRE_TOKEN: bool = False
    # Each worker process re-reads gateway credentials at most this often
    GATEWAY_CONFIG_TTL_SECONDS: int = 60

    ASAAS_API_KEY: Optional[str] = None
    ASAAS_ENVIRONMENT: str = "sandbox"
    ASAAS_WEBHOOK_TOKEN: Optional[str] = None

    INFINITYPAY_API_KEY: Optional[str] = None
    INFINITYPAY_MERCHANT_ID: Optional[str] = None
    INFINITYPAY_WEBHOOK_SECRET: Optional[str] = None
    INFINITYPAY_BASE_URL: str = "https://api.infinitypay.com/v1"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()

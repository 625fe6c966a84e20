# backend/app/core/constants.py
from enum import Enum
from typing import Dict, Any, List, FrozenSet


class TenantStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    PIX = "PIX"
    BOLETO = "BOLETO"
    CREDIT_CARD = "CREDIT_CARD"


class GatewayName(str, Enum):
    ASAAS = "asaas"
    INFINITYPAY = "infinitypay"


class UsageDimension(str, Enum):
    USERS = "users"
    PRODUCTS = "products"
    TRANSACTIONS = "transactions"
    STORAGE = "storage"


class UsageLevel(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


# Quotas at or above this value are unlimited (negative values too)
UNLIMITED = 999999

USAGE_WARNING_PERCENT = 80
USAGE_CRITICAL_PERCENT = 100

# Subscription states that grant write access
GATING_STATUSES: FrozenSet[SubscriptionStatus] = frozenset(
    {SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE}
)

# Allowed charge transitions; anything missing here is rejected
CHARGE_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.CONFIRMED,
        PaymentStatus.OVERDUE,
        PaymentStatus.CANCELLED,
        PaymentStatus.FAILED,
    }),
    PaymentStatus.CONFIRMED: frozenset({PaymentStatus.REFUNDED}),
}

# Charges the reconciler keeps polling
OPEN_CHARGE_STATUSES: FrozenSet[PaymentStatus] = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.OVERDUE}
)

BILLING_CYCLE_MONTHS: Dict[BillingCycle, int] = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.ANNUAL: 12,
}

# Dashboard labels and units per quota dimension
USAGE_METRICS: Dict[UsageDimension, Dict[str, str]] = {
    UsageDimension.USERS: {"name": "Users", "unit": "users", "limit_field": "max_users"},
    UsageDimension.PRODUCTS: {"name": "Products", "unit": "products", "limit_field": "max_products"},
    UsageDimension.TRANSACTIONS: {
        "name": "Monthly transactions",
        "unit": "transactions",
        "limit_field": "max_monthly_transactions",
    },
    UsageDimension.STORAGE: {"name": "Storage", "unit": "GB", "limit_field": "max_storage_gb"},
}

# Modules a tenant can be granted; plan features are drawn from this catalog
AVAILABLE_MODULES: Dict[str, str] = {
    "DASHBOARD": "KPIs and real-time charts",
    "PRODUCTS": "Product catalog",
    "STOCK": "Stock movements and balances",
    "ORDERS": "Sales orders",
    "CUSTOMERS": "Customer registry",
    "COMPLIANCE": "Regulatory compliance",
    "NFE": "NF-e and NFC-e issuance",
    "FINANCE": "Payables and receivables",
    "ROUTES": "Delivery route planning",
    "BI": "Business intelligence reports",
    "AUTOMATION": "Workflow automation",
}

BASE_FEATURES: List[str] = [
    "DASHBOARD",
    "PRODUCTS",
    "STOCK",
    "ORDERS",
    "CUSTOMERS",
    "COMPLIANCE",
]

# Plan catalog seeded on first start
DEFAULT_PLANS: List[Dict[str, Any]] = [
    {
        "name": "starter",
        "display_name": "Starter",
        "description": "For small distributors getting started",
        "price_monthly": 299,
        "price_annual": 2990,
        "max_users": 3,
        "max_products": 1000,
        "max_monthly_transactions": 500,
        "max_storage_gb": 5,
        "max_api_calls_per_minute": 30,
        "features": BASE_FEATURES,
        "is_highlighted": False,
    },
    {
        "name": "professional",
        "display_name": "Professional",
        "description": "Fiscal documents, finance and route planning",
        "price_monthly": 799,
        "price_annual": 7990,
        "max_users": 10,
        "max_products": 10000,
        "max_monthly_transactions": 5000,
        "max_storage_gb": 50,
        "max_api_calls_per_minute": 100,
        "features": BASE_FEATURES + ["NFE", "FINANCE", "ROUTES"],
        "is_highlighted": True,
    },
    {
        "name": "enterprise",
        "display_name": "Enterprise",
        "description": "Unlimited seats, catalog and transactions",
        "price_monthly": 2499,
        "price_annual": 24990,
        "max_users": UNLIMITED,
        "max_products": UNLIMITED,
        "max_monthly_transactions": UNLIMITED,
        "max_storage_gb": 500,
        "max_api_calls_per_minute": 300,
        "features": BASE_FEATURES + ["NFE", "FINANCE", "ROUTES", "BI", "AUTOMATION"],
        "is_highlighted": False,
    },
]


def is_unlimited(limit: float) -> bool:
    return limit < 0 or limit >= UNLIMITED

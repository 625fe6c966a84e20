# backend/app/db/models/__init__.py
from app.db.models.tenant import Tenant
from app.db.models.plan import Plan
from app.db.models.subscription import Subscription
from app.db.models.payment import Payment
from app.db.models.payment_config import GlobalPaymentConfig
from app.db.models.audit_log import AuditLog

__all__ = ["Tenant", "Plan", "Subscription", "Payment", "GlobalPaymentConfig", "AuditLog"]

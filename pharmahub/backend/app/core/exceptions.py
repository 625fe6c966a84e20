# backend/app/core/exceptions.py
"""
Application error taxonomy.

Every error carries an HTTP status and a machine-readable code; the API layer
renders them as ``{"detail": ..., "code": ...}``.
"""
from typing import Optional, Dict, Any


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "code": self.code}
        body.update(self.extra)
        return body


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class TenantNotFound(NotFoundError):
    code = "TENANT_NOT_FOUND"


class ChargeNotFound(NotFoundError):
    code = "CHARGE_NOT_FOUND"


class SubscriptionNotFound(NotFoundError):
    code = "SUBSCRIPTION_NOT_FOUND"


class PlanNotFound(NotFoundError):
    code = "PLAN_NOT_FOUND"


class MissingTenant(AppError):
    status_code = 400
    code = "MISSING_TENANT"


class TenantInactive(AppError):
    status_code = 403
    code = "TENANT_INACTIVE"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class InvalidStateError(AppError):
    status_code = 409
    code = "INVALID_STATE"


class SubscriptionInactive(AppError):
    status_code = 403
    code = "SUBSCRIPTION_INACTIVE"

    def __init__(self, message: str, status: str):
        super().__init__(message, code=f"LICENSE_{status.upper()}", extra={"status": status})
        self.status = status


class AuthError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class QuotaExceeded(AppError):
    status_code = 402
    code = "PLAN_LIMIT_REACHED"


class ConfigurationError(AppError):
    status_code = 500
    code = "GATEWAY_NOT_CONFIGURED"


class MalformedPayload(AppError):
    status_code = 400
    code = "MALFORMED_PAYLOAD"


class GatewayError(AppError):
    """Third-party gateway failure; carries the upstream HTTP status."""

    status_code = 502
    code = "GATEWAY_ERROR"

    def __init__(self, provider: str, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            f"{provider} error ({upstream_status or 'network'}): {message}",
            extra={"provider": provider, "upstream_status": upstream_status},
        )
        self.provider = provider
        self.upstream_status = upstream_status

    @property
    def is_not_found(self) -> bool:
        return self.upstream_status == 404


class ModuleNotEnabled(AppError):
    status_code = 403
    code = "MODULE_NOT_ENABLED"

    def __init__(self, module: str):
        super().__init__(
            f'Module "{module}" is not available on your plan. Upgrade to access it.',
            extra={"module": module},
        )
        self.module = module


class UnknownModule(AppError):
    status_code = 400
    code = "UNKNOWN_MODULE"

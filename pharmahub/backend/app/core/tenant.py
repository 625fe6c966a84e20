"""Tenant dependency resolver for FastAPI routes."""
from typing import Optional

from fastapi import Header

from app.core.exceptions import MissingTenant


async def tenant_identifiers(
    x_tenant_id: Optional[str] = Header(None),
    x_tenant_cnpj: Optional[str] = Header(None),
) -> dict:
    """
    Extract the tenant identity from request headers.

    Either X-Tenant-ID or X-Tenant-CNPJ must be present; the id wins when both are.

    Raises:
        MissingTenant: If neither header is sent
    """
    if not x_tenant_id and not x_tenant_cnpj:
        raise MissingTenant("X-Tenant-ID or X-Tenant-CNPJ header is required")
    return {"tenant_id": x_tenant_id or None, "cnpj": x_tenant_cnpj or None}

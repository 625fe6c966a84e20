# backend/app/api/v1/billing.py
from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import (
    get_payment_service,
    get_tenant_context,
    require_admin,
)
from app.db.connection_router import TenantContext
from app.schemas.billing import Charge, ChargeCreate, ChargeList, SyncResult, SyncSummary
from app.services.payment.payment_service import PaymentService

router = APIRouter()


@router.post("/charges", response_model=Charge, status_code=status.HTTP_201_CREATED)
async def create_charge(
    charge_in: ChargeCreate,
    context: TenantContext = Depends(get_tenant_context),
    service: PaymentService = Depends(get_payment_service),
):
    """Create a charge at the active gateway for the calling tenant"""
    return await service.create_charge(
        tenant_id=context.tenant_id,
        amount=charge_in.amount,
        payment_method=charge_in.payment_method,
        description=charge_in.description,
        billing_cycle=charge_in.billing_cycle,
        due_date=charge_in.due_date,
    )


@router.get("/charges", response_model=ChargeList)
async def list_charges(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    context: TenantContext = Depends(get_tenant_context),
    service: PaymentService = Depends(get_payment_service),
):
    charges = await service.list_charges(context.tenant_id, skip=skip, limit=limit)
    return {"items": charges, "count": len(charges)}


@router.get("/charges/{charge_id}", response_model=Charge)
async def get_charge(
    charge_id: str,
    context: TenantContext = Depends(get_tenant_context),
    service: PaymentService = Depends(get_payment_service),
):
    return await service.get_charge(charge_id, tenant_id=context.tenant_id)


@router.delete(
    "/charges/{gateway_charge_id}",
    response_model=Charge,
    dependencies=[Depends(require_admin)],
)
async def cancel_charge(
    gateway_charge_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    """Cancel a pending or overdue charge at the gateway"""
    return await service.cancel_charge(gateway_charge_id)


@router.post(
    "/charges/{gateway_charge_id}/sync",
    response_model=SyncResult,
    dependencies=[Depends(require_admin)],
)
async def sync_charge(
    gateway_charge_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    """Force a status poll for one charge"""
    return SyncResult.model_validate(await service.sync_charge_status(gateway_charge_id))


@router.post("/sync", response_model=SyncSummary, dependencies=[Depends(require_admin)])
async def sync_all_charges(service: PaymentService = Depends(get_payment_service)):
    return SyncSummary.model_validate(await service.sync_all_charges())

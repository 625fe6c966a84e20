# backend/app/api/v1/webhooks.py
import json
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from app.api.dependencies import get_payment_service
from app.core.constants import GatewayName
from app.core.exceptions import MalformedPayload
from app.schemas.billing import WebhookAck
from app.services.payment.payment_service import PaymentService

router = APIRouter()


@router.post("/{provider}", response_model=WebhookAck)
async def receive_webhook(
    provider: GatewayName,
    request: Request,
    x_webhook_token: Optional[str] = Header(None),
    asaas_access_token: Optional[str] = Header(None),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Gateway callback.

    Acknowledged with 200 even when nothing changed so the provider stops
    retrying; only bad tokens (401) and unreadable bodies (400) are refused.
    """
    try:
        payload = json.loads(await request.body())
    except ValueError:
        raise MalformedPayload("Webhook body is not valid JSON")

    outcome = await service.process_webhook(
        provider, payload, token=x_webhook_token or asaas_access_token
    )
    return WebhookAck.model_validate(outcome)

# backend/app/workers/billing_tasks.py
import asyncio
from typing import Any, Dict

from celery import Task

from app.workers.celery_app import celery_app
from app.core.logging import logger


class BillingTask(Task):
    """Custom task class for billing jobs"""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Handle task failure"""
        logger.error(f"Billing task {self.name} ({task_id}) failed: {exc}", exc_info=True)


@celery_app.task(bind=True, base=BillingTask, name="expire_subscriptions")
def expire_subscriptions_task(self) -> Dict[str, Any]:
    """Nightly sweep persisting `expired` on lapsed subscriptions"""
    expired = asyncio.run(_expire_subscriptions_async())
    return {"expired": expired}


@celery_app.task(bind=True, base=BillingTask, name="sync_pending_charges")
def sync_pending_charges_task(self) -> Dict[str, Any]:
    """Poll gateways for every open charge"""
    return asyncio.run(_sync_pending_charges_async())


async def _expire_subscriptions_async() -> int:
    from app.db.database import async_session_local, engine
    from app.services.subscription_service import SubscriptionService

    try:
        async with async_session_local() as session:
            return await SubscriptionService(session).expire_overdue()
    finally:
        # Pooled connections are bound to this event loop
        await engine.dispose()


async def _sync_pending_charges_async() -> Dict[str, Any]:
    from app.db.database import async_session_local, engine
    from app.services.payment.gateway_config import GatewayConfigService
    from app.services.payment.payment_service import PaymentService

    try:
        async with async_session_local() as session:
            snapshot = await GatewayConfigService(session).load_snapshot()
            summary = await PaymentService(session, gateway_settings=snapshot).sync_all_charges()
        return {"total": summary.total, "synced": summary.synced, "errors": summary.errors}
    finally:
        await engine.dispose()

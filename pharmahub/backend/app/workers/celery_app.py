# backend/app/workers/celery_app.py
from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "pharmahub",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.workers.billing_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "expire-overdue-subscriptions": {
        "task": "expire_subscriptions",
        "schedule": crontab(hour=settings.SUBSCRIPTION_SWEEP_CRON_HOUR, minute=0),
    },
    "sync-pending-charges": {
        "task": "sync_pending_charges",
        "schedule": float(settings.PAYMENT_SYNC_INTERVAL_SECONDS),
    },
}

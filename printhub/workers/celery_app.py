# printhub/workers/celery_app.py
"""
Celery application for notification delivery.

Start a worker with:
    celery -A printhub.workers.celery_app:celery_app worker -Q notifications --concurrency=2
"""

from celery import Celery

from printhub.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "printhub",
    broker=settings.NOTIFICATIONS_BROKER_URL or "memory://",
    backend=settings.CELERY_RESULT_BACKEND,
    include=["printhub.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue=settings.NOTIFICATION_QUEUE,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_ignore_result=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
)

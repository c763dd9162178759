# printhub/workers/tasks.py
"""
Worker side of the notification queue.

Each job is processed once per attempt; an undelivered result or an unreachable
channel raises, so Celery retries with exponential backoff (at-least-once).
Idempotence of effects (e.g. the admin "finished" alert) is guarded before enqueueing.
"""

from __future__ import annotations

import asyncio
from typing import Any

from printhub.core.config import get_settings
from printhub.core.db import close_db_async, get_session_factory
from printhub.core.exceptions import PrintHubValidationError, UpstreamUnavailableError
from printhub.core.logging import bound_context, get_logger
from printhub.integrations.messaging_base import get_messaging_channel
from printhub.services.notifications import DELIVER_TASK_NAME, NotificationJob, deliver_job
from printhub.workers.celery_app import celery_app

logger = get_logger(__name__)

_settings = get_settings()


class NotificationNotDelivered(Exception):
    """Channel reported the message as not delivered (e.g. session not ready)."""


async def _deliver(payload: dict[str, Any]) -> bool:
    job = NotificationJob.from_payload(payload)
    try:
        with bound_context(tenant=job.tenant_id):
            return await deliver_job(
                job,
                get_messaging_channel(_settings),
                get_session_factory(),
                timeout=_settings.NOTIFY_SEND_TIMEOUT_SECONDS,
            )
    finally:
        # engine pools are bound to the loop asyncio.run() is about to close
        await close_db_async()


@celery_app.task(
    name=DELIVER_TASK_NAME,
    bind=True,
    autoretry_for=(UpstreamUnavailableError, NotificationNotDelivered),
    retry_backoff=_settings.NOTIFICATION_RETRY_BACKOFF_SECONDS,
    retry_backoff_max=600,
    retry_jitter=True,
    max_retries=_settings.NOTIFICATION_MAX_RETRIES,
    acks_late=True,
)
def deliver_notification(self, payload: dict[str, Any]) -> bool:
    """Deliver one admin/customer notification job."""
    try:
        delivered = asyncio.run(_deliver(payload))
    except PrintHubValidationError as e:
        # no usable target or malformed payload: a retry would fail the same way
        logger.warning("notification_dropped", task_id=self.request.id, code=e.code, reason=e.message)
        return False
    if not delivered:
        logger.warning(
            "notification_retry_scheduled",
            task_id=self.request.id,
            attempt=self.request.retries,
            kind=payload.get("kind"),
        )
        raise NotificationNotDelivered(f"{payload.get('kind')} notification not delivered")
    return True


__all__ = ["deliver_notification", "NotificationNotDelivered"]

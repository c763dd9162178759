# printhub/services/notifications.py
"""
Notification dispatch to the shop admin and to customers.

Two strategies behind one interface, chosen once at startup:

- QueuedDispatcher: publishes a Celery task and returns True once the broker has
  the job. Delivery is eventual and retried by the worker (at-least-once).
- DirectDispatcher: sends synchronously through the messaging channel, bounded by
  NOTIFY_SEND_TIMEOUT_SECONDS, and returns the channel's real outcome.

Both resolve targets the same way (deliver_job): admin → tenant settings admin phone,
customer → phone normalized to digits. An empty target is never sent.
"""

from __future__ import annotations

import asyncio
import enum
import re
from dataclasses import asdict, dataclass
from typing import Any, Optional, Protocol

from celery import Celery
from kombu.exceptions import OperationalError as BrokerOperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from printhub.core.config import Settings
from printhub.core.exceptions import PrintHubValidationError, UpstreamUnavailableError
from printhub.core.logging import get_logger
from printhub.core.metrics import NOTIFICATIONS
from printhub.integrations.messaging_base import MessagingChannel, get_messaging_channel
from printhub.services.settings_store import SettingsStore

logger = get_logger(__name__)

DELIVER_TASK_NAME = "printhub.deliver_notification"

_NON_DIGITS = re.compile(r"\D+")


class NotificationKind(str, enum.Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


@dataclass(frozen=True)
class NotificationJob:
    kind: NotificationKind
    tenant_id: str
    message: str
    phone: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "NotificationJob":
        try:
            return cls(
                kind=NotificationKind(payload["kind"]),
                tenant_id=str(payload["tenant_id"]),
                message=str(payload["message"]),
                phone=payload.get("phone"),
            )
        except (KeyError, ValueError) as e:
            raise PrintHubValidationError(f"Malformed notification job: {e}") from e


def normalize_phone(raw: Optional[str]) -> str:
    """Keep digits only: '+54 9 (11) 5555-0000' → '5491155550000'."""
    return _NON_DIGITS.sub("", raw or "")


async def deliver_job(
    job: NotificationJob,
    channel: MessagingChannel,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    timeout: float,
) -> bool:
    """
    Resolve the target and send once.

    False: the channel is not ready.
    Raises PrintHubValidationError when there is no usable target (retrying cannot help)
    and UpstreamUnavailableError on transport failure or timeout.
    """
    if job.kind == NotificationKind.ADMIN:
        async with session_factory() as session:
            business = await SettingsStore(session).get(job.tenant_id)
        target = normalize_phone(business.admin_phone)
        if not target:
            raise PrintHubValidationError("Admin phone is not configured", code="ADMIN_PHONE_MISSING")
    else:
        target = normalize_phone(job.phone)
        if not target:
            raise PrintHubValidationError("Customer contact has no phone digits", code="CUSTOMER_PHONE_UNUSABLE")

    try:
        delivered = await asyncio.wait_for(channel.send(target, job.message), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise UpstreamUnavailableError(
            f"Messaging channel '{channel.name}' timed out after {timeout}s",
            extra={"kind": job.kind.value},
        ) from e

    logger.info(
        "notification_delivered" if delivered else "notification_not_delivered",
        kind=job.kind.value,
        tenant=job.tenant_id,
    )
    return bool(delivered)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------
class NotificationDispatcher(Protocol):
    mode: str

    async def notify(
        self,
        kind: NotificationKind,
        tenant_id: str,
        message: str,
        phone: Optional[str] = None,
    ) -> bool: ...


class DirectDispatcher:
    mode = "direct"

    def __init__(
        self,
        channel: MessagingChannel,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        timeout: float = 10.0,
    ):
        self.channel = channel
        self.session_factory = session_factory
        self.timeout = timeout

    async def notify(
        self,
        kind: NotificationKind,
        tenant_id: str,
        message: str,
        phone: Optional[str] = None,
    ) -> bool:
        job = NotificationJob(kind=NotificationKind(kind), tenant_id=tenant_id, message=message, phone=phone)
        try:
            delivered = await deliver_job(job, self.channel, self.session_factory, timeout=self.timeout)
        except (PrintHubValidationError, UpstreamUnavailableError) as e:
            NOTIFICATIONS.labels(job.kind.value, self.mode, "failed").inc()
            logger.warning("direct_notification_failed", kind=job.kind.value, tenant=tenant_id, error=e.message)
            return False
        NOTIFICATIONS.labels(job.kind.value, self.mode, "delivered" if delivered else "not_delivered").inc()
        return delivered


class QueuedDispatcher:
    mode = "queued"

    def __init__(self, celery_app: Celery, *, queue: str = "notifications"):
        self.celery_app = celery_app
        self.queue = queue

    async def notify(
        self,
        kind: NotificationKind,
        tenant_id: str,
        message: str,
        phone: Optional[str] = None,
    ) -> bool:
        job = NotificationJob(kind=NotificationKind(kind), tenant_id=tenant_id, message=message, phone=phone)
        try:
            # send_task does blocking broker I/O
            await asyncio.to_thread(
                self.celery_app.send_task,
                DELIVER_TASK_NAME,
                args=[job.to_payload()],
                queue=self.queue,
            )
        except BrokerOperationalError as e:
            NOTIFICATIONS.labels(job.kind.value, self.mode, "broker_unavailable").inc()
            raise UpstreamUnavailableError(f"Notification broker unavailable: {e}") from e
        NOTIFICATIONS.labels(job.kind.value, self.mode, "enqueued").inc()
        logger.info("notification_enqueued", kind=job.kind.value, tenant=tenant_id, queue=self.queue)
        return True


def build_dispatcher(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    channel: Optional[MessagingChannel] = None,
) -> NotificationDispatcher:
    """Pick the strategy once, from configuration."""
    if settings.queue_enabled:
        from printhub.workers.celery_app import celery_app

        return QueuedDispatcher(celery_app, queue=settings.NOTIFICATION_QUEUE)

    return DirectDispatcher(
        channel or get_messaging_channel(settings),
        session_factory,
        timeout=settings.NOTIFY_SEND_TIMEOUT_SECONDS,
    )


__all__ = [
    "DELIVER_TASK_NAME",
    "NotificationKind",
    "NotificationJob",
    "NotificationDispatcher",
    "DirectDispatcher",
    "QueuedDispatcher",
    "build_dispatcher",
    "deliver_job",
    "normalize_phone",
]

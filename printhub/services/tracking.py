# printhub/services/tracking.py
"""Public, unauthenticated view of an order by its tracking code, plus customer feedback."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from printhub.core.exceptions import NotFoundError, OrderNotDeliveredError, PrintHubValidationError
from printhub.core.logging import get_logger
from printhub.models import STATUS_PROGRESSION, Order, OrderStatus
from printhub.services.tracking_codes import normalize_tracking_code

logger = get_logger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def _last_known_step(order: Order) -> int:
    """Index on the canonical path an order actually reached, read from its timestamps."""
    if order.delivered_at is not None:
        return 3
    if order.finished_at is not None:
        return 2
    if order.started_at is not None:
        return 1
    return 0


def progress_percent(order: Order) -> int:
    status = order.status
    if status in STATUS_PROGRESSION:
        idx = STATUS_PROGRESSION.index(status)
    else:
        idx = _last_known_step(order)
    idx = max(0, min(idx, len(STATUS_PROGRESSION) - 1))
    return round(idx * 100 / (len(STATUS_PROGRESSION) - 1))


def public_projection(order: Order) -> dict[str, Any]:
    """No internal ids, no cost or profit."""
    return {
        "tracking_code": order.tracking_code,
        "client_name": order.client_name,
        "status": order.status.value,
        "progress": progress_percent(order),
        "items": [{"product_name": i.product_name, "quantity": i.quantity} for i in order.items],
        "total": order.total,
        "deposit": order.deposit,
        "created_at": order.created_at,
        "started_at": order.started_at,
        "finished_at": order.finished_at,
        "delivered_at": order.delivered_at,
        "due_date": order.due_date,
        "customer_satisfaction": order.customer_satisfaction,
        "customer_feedback": order.customer_feedback,
    }


class TrackingGateway:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _by_code(self, code: str) -> Order:
        normalized = normalize_tracking_code(code)
        order: Optional[Order] = None
        if normalized:
            order = (
                await self.session.execute(
                    select(Order)
                    .where(Order.tracking_code == normalized)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one_or_none()
        if order is None:
            raise NotFoundError("No order with that tracking code", extra={"tracking_code": normalized})
        return order

    async def get_by_tracking_code(self, code: str) -> dict[str, Any]:
        return public_projection(await self._by_code(code))

    async def submit_feedback(self, code: str, rating: Any, text: Optional[str] = None) -> dict[str, Any]:
        try:
            value = int(rating)
        except (TypeError, ValueError):
            raise PrintHubValidationError("rating must be an integer between 1 and 5", code="INVALID_RATING") from None
        if value != rating and not isinstance(rating, str):
            raise PrintHubValidationError("rating must be an integer between 1 and 5", code="INVALID_RATING")
        if not MIN_RATING <= value <= MAX_RATING:
            raise PrintHubValidationError(
                f"rating must be between {MIN_RATING} and {MAX_RATING}",
                code="INVALID_RATING",
                extra={"rating": value},
            )

        order = await self._by_code(code)
        if order.status != OrderStatus.DELIVERED:
            raise OrderNotDeliveredError(
                "Feedback is accepted once the order has been delivered",
                extra={"status": order.status.value},
            )

        order.customer_satisfaction = value
        order.customer_feedback = (text or "").strip() or None
        await self.session.commit()
        logger.info("feedback_recorded", tenant=order.tenant_id, tracking_code=order.tracking_code, rating=value)
        return public_projection(await self._by_code(order.tracking_code))


__all__ = ["TrackingGateway", "progress_percent", "public_projection"]

from datetime import datetime

import pytest

from printhub.core.exceptions import NotFoundError, OrderNotDeliveredError, PrintHubValidationError
from printhub.models import Order, OrderStatus
from printhub.services.tracking import TrackingGateway, progress_percent


@pytest.mark.parametrize(
    "status, expected",
    [
        (OrderStatus.PENDING, 0),
        (OrderStatus.IN_PROGRESS, 33),
        (OrderStatus.COMPLETED, 67),
        (OrderStatus.DELIVERED, 100),
    ],
)
def test_progress_follows_the_canonical_path(status, expected):
    assert progress_percent(Order(status=status)) == expected


def test_cancelled_progress_uses_the_last_reached_step():
    assert progress_percent(Order(status=OrderStatus.CANCELLED)) == 0
    started = Order(status=OrderStatus.CANCELLED, started_at=datetime(2026, 1, 5))
    assert progress_percent(started) == 33
    finished = Order(status=OrderStatus.CANCELLED, started_at=datetime(2026, 1, 5), finished_at=datetime(2026, 1, 6))
    assert progress_percent(finished) == 67


@pytest.mark.asyncio
async def test_lookup_is_case_insensitive_and_hides_internals(session, make_order):
    order = await make_order(status=OrderStatus.IN_PROGRESS)
    view = await TrackingGateway(session).get_by_tracking_code(f"  {order.tracking_code.lower()} ")

    assert view["tracking_code"] == order.tracking_code
    assert view["status"] == "in_progress"
    assert view["progress"] == 33
    assert "id" not in view and "profit" not in view and "tenant_id" not in view


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["PH-NOPE12345", "", "   "])
async def test_unknown_code(session, code):
    with pytest.raises(NotFoundError):
        await TrackingGateway(session).get_by_tracking_code(code)


@pytest.mark.asyncio
async def test_feedback_on_delivered_order(session, make_order):
    order = await make_order(status=OrderStatus.DELIVERED, delivered_at=datetime(2026, 3, 1))
    gateway = TrackingGateway(session)

    view = await gateway.submit_feedback(order.tracking_code, 5, "  Great finish  ")
    assert view["customer_satisfaction"] == 5
    assert view["customer_feedback"] == "Great finish"

    # resubmission overwrites
    view = await gateway.submit_feedback(order.tracking_code, 3)
    assert view["customer_satisfaction"] == 3
    assert view["customer_feedback"] is None


@pytest.mark.asyncio
async def test_feedback_before_delivery_is_rejected(session, make_order):
    order = await make_order(status=OrderStatus.COMPLETED)
    with pytest.raises(OrderNotDeliveredError):
        await TrackingGateway(session).submit_feedback(order.tracking_code, 4)


@pytest.mark.asyncio
@pytest.mark.parametrize("rating", [0, 6, -1, 4.5, "abc", None])
async def test_invalid_rating(session, make_order, rating):
    order = await make_order(status=OrderStatus.DELIVERED)
    with pytest.raises(PrintHubValidationError) as exc:
        await TrackingGateway(session).submit_feedback(order.tracking_code, rating)
    assert exc.value.code == "INVALID_RATING"

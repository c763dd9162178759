"""Public, unauthenticated tracking page API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from printhub.core.dependencies import get_tracking_gateway
from printhub.schemas.tracking import FeedbackSubmit, PublicOrder
from printhub.services.tracking import TrackingGateway

router = APIRouter(prefix="/public/track", tags=["Tracking"])


@router.get("/{code}", response_model=PublicOrder)
async def track_order(
    code: str = Path(..., min_length=1, max_length=32),
    gateway: TrackingGateway = Depends(get_tracking_gateway),
):
    """Look an order up by tracking code (case-insensitive)."""
    return await gateway.get_by_tracking_code(code)


@router.post("/{code}/feedback", response_model=PublicOrder)
async def submit_feedback(
    payload: FeedbackSubmit,
    code: str = Path(..., min_length=1, max_length=32),
    gateway: TrackingGateway = Depends(get_tracking_gateway),
):
    """Rate a delivered order (1-5). Resubmitting replaces the previous rating."""
    return await gateway.submit_feedback(code, payload.rating, payload.text)

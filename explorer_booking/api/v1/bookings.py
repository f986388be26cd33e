"""Booking status endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from explorer_booking.api.deps import get_status_manager
from explorer_booking.domain.booking_status import (
    BOOKING_TRANSITIONS,
    STATUS_DEFINITIONS,
    BookingStatus,
    get_status_display,
)
from explorer_booking.schemas.booking import (
    Booking,
    BookingStatusResponse,
    BookingStatusUpdate,
    BookingStatusUpdateResponse,
    SideEffectResponse,
    StatusDefinitionResponse,
    StatusReport,
)
from explorer_booking.services.booking_status_service import BookingStatusManager

router = APIRouter()

StatusManager = Annotated[BookingStatusManager, Depends(get_status_manager)]


def _status_response(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "booking_reference": booking.reference,
        "status": booking.status,
        "overall_status": booking.overall_status,
        "product_statuses": booking.product_statuses,
        "display": get_status_display(
            booking.overall_status or booking.status, booking.product_statuses
        ),
        "allowed_transitions": list(BOOKING_TRANSITIONS.get(booking.status, ())),
        "status_history": booking.status_history,
        "last_updated": booking.last_updated,
    }


@router.get("/statuses", response_model=list[StatusDefinitionResponse])
async def list_statuses() -> list[dict]:
    """Status table with the transitions allowed out of each status."""
    return [
        {
            "code": definition.code,
            "label": definition.label,
            "color": definition.color,
            "description": definition.description,
            "priority": definition.priority,
            "is_active": definition.is_active,
            "allow_refund": definition.allow_refund,
            "allowed_transitions": list(BOOKING_TRANSITIONS[code]),
        }
        for code, definition in STATUS_DEFINITIONS.items()
    ]


@router.get("/report", response_model=StatusReport)
async def status_report(
    manager: StatusManager,
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
) -> StatusReport:
    """Status counts and average time between transitions."""
    return await manager.generate_status_report(from_date=from_date, to_date=to_date)


@router.get("/", response_model=list[BookingStatusResponse])
async def list_bookings_by_status(
    manager: StatusManager,
    status: BookingStatus = Query(...),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    product_id: str | None = Query(None),
    customer_id: str | None = Query(None),
) -> list[dict]:
    """Bookings currently in a status."""
    bookings = await manager.get_bookings_by_status(
        status,
        from_date=from_date,
        to_date=to_date,
        product_id=product_id,
        customer_id=customer_id,
    )
    return [_status_response(booking) for booking in bookings]


@router.get("/{booking_id}/status", response_model=BookingStatusResponse)
async def get_booking_status(booking_id: str, manager: StatusManager) -> dict:
    """Current status, display info and history of a booking."""
    booking = await manager.get_booking(booking_id)
    return _status_response(booking)


@router.patch("/{booking_id}/status", response_model=BookingStatusUpdateResponse)
async def update_booking_status(
    booking_id: str,
    request: BookingStatusUpdate,
    manager: StatusManager,
) -> dict:
    """Move a booking to a new status."""
    metadata = dict(request.metadata)
    metadata["triggered_by"] = request.triggered_by or "admin"
    if request.product_id:
        metadata["product_id"] = request.product_id

    outcome = await manager.transition_booking(
        booking_id, request.status, reason=request.reason, metadata=metadata
    )
    response = _status_response(outcome.booking)
    response["side_effects"] = [
        SideEffectResponse(
            action=result.action,
            succeeded=result.succeeded,
            error=result.error,
            skipped=result.skipped,
        )
        for result in outcome.side_effects
    ]
    return response

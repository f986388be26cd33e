"""Pydantic schemas for bookings and API validation."""

from explorer_booking.schemas.booking import (
    Booking,
    BookingProduct,
    BookingStatusResponse,
    BookingStatusUpdate,
    BookingStatusUpdateResponse,
    StatusDefinitionResponse,
    StatusHistoryEntry,
    StatusReport,
    Traveler,
)

__all__ = [
    "Booking",
    "BookingProduct",
    "BookingStatusResponse",
    "BookingStatusUpdate",
    "BookingStatusUpdateResponse",
    "StatusDefinitionResponse",
    "StatusHistoryEntry",
    "StatusReport",
    "Traveler",
]

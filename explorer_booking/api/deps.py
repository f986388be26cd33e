"""API dependencies."""

from fastapi import Request

from explorer_booking.services.booking_status_service import BookingStatusManager


def get_status_manager(request: Request) -> BookingStatusManager:
    """Status manager created during application startup."""
    return request.app.state.status_manager

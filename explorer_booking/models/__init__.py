"""Database models."""

from explorer_booking.models.booking import BookingDocument

__all__ = [
    "BookingDocument",
]

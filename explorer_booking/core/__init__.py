"""Core utilities: exceptions, locks and middleware."""

from explorer_booking.core.exceptions import (
    AppException,
    ExternalServiceError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "AppException",
    "ExternalServiceError",
    "InvalidTransitionError",
    "NotFoundError",
    "ValidationError",
]

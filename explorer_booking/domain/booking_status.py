"""Booking lifecycle state machine.

States:
- PENDING: awaiting payment confirmation
- FAILED: payment failed or booking expired (may be rebooked)
- CONFIRMED: booking confirmed and paid
- UPCOMING: experience starts within the upcoming window
- EXPLORING: experience in progress
- COMPLETED: experience finished
- CANCELLED: booking cancelled
- REFUNDED: full refund processed (terminal)
- PARTIALLY_REFUNDED: partial refund processed
"""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from explorer_booking.core.exceptions import InvalidTransitionError


class BookingStatus(str, Enum):
    """Booking status codes."""

    PENDING = "PENDING"
    FAILED = "FAILED"
    CONFIRMED = "CONFIRMED"
    UPCOMING = "UPCOMING"
    EXPLORING = "EXPLORING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


@dataclass(frozen=True)
class StatusDefinition:
    """Static metadata for a status code."""

    code: str
    label: str
    color: str
    description: str
    priority: int
    is_active: bool
    allow_refund: bool


# Table order doubles as the aggregation tie-break order
STATUS_DEFINITIONS: dict[str, StatusDefinition] = {
    definition.code: definition
    for definition in (
        StatusDefinition(
            code="PENDING",
            label="Pending Payment",
            color="bg-yellow-100 text-yellow-800 border-yellow-200",
            description="Awaiting payment confirmation",
            priority=1,
            is_active=True,
            allow_refund=False,
        ),
        StatusDefinition(
            code="FAILED",
            label="Payment Failed",
            color="bg-red-100 text-red-800 border-red-200",
            description="Payment failed or booking expired",
            priority=2,
            is_active=False,
            allow_refund=False,
        ),
        StatusDefinition(
            code="CONFIRMED",
            label="Confirmed",
            color="bg-green-100 text-green-800 border-green-200",
            description="Booking confirmed and paid",
            priority=3,
            is_active=True,
            allow_refund=True,
        ),
        StatusDefinition(
            code="UPCOMING",
            label="Upcoming",
            color="bg-blue-100 text-blue-800 border-blue-200",
            description="Experience is scheduled within 24 hours",
            priority=4,
            is_active=True,
            allow_refund=True,
        ),
        StatusDefinition(
            code="EXPLORING",
            label="In Progress",
            color="bg-purple-100 text-purple-800 border-purple-200",
            description="Experience is currently happening",
            priority=5,
            is_active=True,
            allow_refund=False,
        ),
        StatusDefinition(
            code="COMPLETED",
            label="Completed",
            color="bg-green-100 text-green-800 border-green-200",
            description="Experience completed successfully",
            priority=6,
            is_active=False,
            allow_refund=False,
        ),
        StatusDefinition(
            code="CANCELLED",
            label="Cancelled",
            color="bg-red-100 text-red-800 border-red-200",
            description="Booking has been cancelled",
            priority=7,
            is_active=False,
            allow_refund=False,
        ),
        StatusDefinition(
            code="REFUNDED",
            label="Refunded",
            color="bg-gray-100 text-gray-800 border-gray-200",
            description="Full refund processed",
            priority=8,
            is_active=False,
            allow_refund=False,
        ),
        StatusDefinition(
            code="PARTIALLY_REFUNDED",
            label="Partially Refunded",
            color="bg-orange-100 text-orange-800 border-orange-200",
            description="Partial refund processed",
            priority=9,
            is_active=False,
            allow_refund=True,
        ),
    )
}

BOOKING_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "PENDING": ("CONFIRMED", "FAILED", "CANCELLED"),
    "FAILED": ("CONFIRMED", "CANCELLED"),  # rebooking after failed payment
    "CONFIRMED": ("UPCOMING", "CANCELLED", "REFUNDED"),
    "UPCOMING": ("EXPLORING", "CANCELLED", "REFUNDED"),
    "EXPLORING": ("COMPLETED", "CANCELLED"),
    "COMPLETED": ("REFUNDED", "PARTIALLY_REFUNDED"),
    "CANCELLED": ("REFUNDED", "PARTIALLY_REFUNDED"),
    "REFUNDED": (),
    "PARTIALLY_REFUNDED": ("REFUNDED",),
}

# Statuses the periodic sweep can still move forward
ACTIVE_STATUSES: frozenset[str] = frozenset({"PENDING", "CONFIRMED", "UPCOMING", "EXPLORING"})

_TABLE_ORDER = {code: index for index, code in enumerate(STATUS_DEFINITIONS)}


def status_code(value: str | BookingStatus) -> str:
    """Plain string code for a status value."""
    if isinstance(value, BookingStatus):
        return value.value
    return value


def can_transition(current: str | BookingStatus, target: str | BookingStatus) -> bool:
    """Whether ``current`` may move to ``target``. Unknown codes are never allowed."""
    current, target = status_code(current), status_code(target)
    if current not in STATUS_DEFINITIONS or target not in STATUS_DEFINITIONS:
        return False
    return target in BOOKING_TRANSITIONS.get(current, ())


def assert_booking_transition(current: str | BookingStatus, target: str | BookingStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(status_code(current), status_code(target))


def status_rank(value: str) -> tuple[int, int]:
    """Total order used to aggregate mixed statuses: priority, then table order."""
    definition = STATUS_DEFINITIONS.get(value)
    if definition is None:
        return (0, -1)
    return (definition.priority, _TABLE_ORDER[value])


def calculate_overall_status(product_statuses: Mapping[str, str]) -> str | None:
    """Overall status of a multi-product booking.

    A single shared status wins outright; mixed statuses resolve to the
    highest ranked one.
    """
    distinct = list(dict.fromkeys(status_code(s) for s in product_statuses.values()))
    if not distinct:
        return None
    if len(distinct) == 1:
        return distinct[0]
    return max(distinct, key=status_rank)


def get_status_display(
    status: str | BookingStatus,
    product_statuses: Mapping[str, str] | None = None,
) -> dict:
    """Presentation info for a status, with a split view for mixed bookings."""
    code = status_code(status)
    definition = STATUS_DEFINITIONS.get(code)
    if definition is None:
        return {
            "code": code,
            "label": code,
            "color": "bg-gray-100 text-gray-800",
            "description": "Unknown status",
        }

    display = {
        "code": definition.code,
        "label": definition.label,
        "color": definition.color,
        "description": definition.description,
        "priority": definition.priority,
        "is_active": definition.is_active,
        "allow_refund": definition.allow_refund,
    }

    if product_statuses and len(product_statuses) > 1:
        if len(set(product_statuses.values())) > 1:
            display["label"] = "Mixed Status"
            display["description"] = "Different products have different statuses"
            display["split_statuses"] = dict(product_statuses)

    return display

"""Booking-related Pydantic schemas."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from explorer_booking.domain.booking_status import BookingStatus


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Traveler(BaseModel):
    """Traveler attached to a booking. The first traveler receives emails."""

    first_name: str
    last_name: str | None = None
    email: str | None = None


class BookingProduct(BaseModel):
    """Product bundled in a multi-product booking."""

    id: str
    name: str | None = None


class StatusHistoryEntry(BaseModel):
    """One recorded status change."""

    model_config = ConfigDict(use_enum_values=True)

    from_status: BookingStatus
    to_status: BookingStatus
    timestamp: datetime
    reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    triggered_by: str = "system"

    @field_validator("timestamp")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return as_utc(v)


class Booking(BaseModel):
    """In-memory representation of a booking status record."""

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)

    id: str
    booking_reference: str | None = None
    customer_id: str | None = None
    product_id: str | None = None
    product_name: str | None = None
    travelers: list[Traveler] = Field(default_factory=list)

    status: BookingStatus = BookingStatus.PENDING
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)

    products: list[BookingProduct] = Field(default_factory=list)
    product_statuses: dict[str, BookingStatus] | None = None
    overall_status: BookingStatus | None = None

    date_time: datetime
    duration: float | None = Field(None, gt=0)  # hours

    total_price: Decimal | None = None
    currency: str = "USD"
    refund_amount: Decimal | None = None
    meeting_point: str | None = None
    cancellation_reason: str | None = None
    failure_reason: str | None = None

    created_at: datetime
    last_updated: datetime | None = None

    @field_validator("date_time", "created_at", "last_updated")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else v

    @property
    def reference(self) -> str:
        return self.booking_reference or self.id

    @property
    def is_multi_product(self) -> bool:
        return len(self.products) > 1

    @property
    def lead_traveler(self) -> Traveler | None:
        return self.travelers[0] if self.travelers else None


class BookingStatusUpdate(BaseModel):
    """Schema for requesting a status change."""

    status: str = Field(..., min_length=1, max_length=32)
    reason: str | None = Field(None, max_length=500)
    product_id: str | None = None
    triggered_by: str | None = Field(None, max_length=50)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SideEffectResponse(BaseModel):
    """Outcome of one side-effect action."""

    action: str
    succeeded: bool
    error: str | None = None
    skipped: bool = False


class BookingStatusResponse(BaseModel):
    """Status view of a booking."""

    id: str
    booking_reference: str | None
    status: str
    overall_status: str | None
    product_statuses: dict[str, str] | None
    display: dict[str, Any]
    allowed_transitions: list[str]
    status_history: list[StatusHistoryEntry]
    last_updated: datetime | None


class BookingStatusUpdateResponse(BookingStatusResponse):
    """Status view returned after a transition."""

    side_effects: list[SideEffectResponse] = Field(default_factory=list)


class StatusDefinitionResponse(BaseModel):
    """Status table entry."""

    code: str
    label: str
    color: str
    description: str
    priority: int
    is_active: bool
    allow_refund: bool
    allowed_transitions: list[str]


class TransitionTiming(BaseModel):
    """Latency statistics for one transition label."""

    average: float  # seconds
    count: int


class StatusReport(BaseModel):
    """Aggregate counts and transition latency."""

    total_bookings: int
    status_breakdown: dict[str, int]
    average_processing_time: dict[str, TransitionTiming]
    generated_at: datetime

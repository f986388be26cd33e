"""
Pytest configuration and shared fixtures
"""
import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest

from explorer_booking.domain.automation import AutomationConfig
from explorer_booking.gateways.base import BookingNotifier, FulfillmentGateway, RefundKind
from explorer_booking.repositories.booking_repository import InMemoryBookingRepository
from explorer_booking.schemas.booking import Booking, BookingProduct, Traveler
from explorer_booking.services.booking_status_service import BookingStatusManager
from explorer_booking.services.transition_scheduler import TransitionScheduler

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def make_booking(booking_id: str = "bk-1", **overrides: Any) -> Booking:
    """Build a booking three days out, created an hour ago."""
    data = {
        "id": booking_id,
        "booking_reference": f"EXP-{booking_id}",
        "customer_id": "cust-1",
        "product_id": "kayak-tour",
        "product_name": "Sunset Kayak Tour",
        "travelers": [Traveler(first_name="Ada", last_name="Lovelace", email="ada@example.com")],
        "status": "PENDING",
        "date_time": NOW + timedelta(days=3),
        "duration": 3,
        "total_price": Decimal("120.00"),
        "meeting_point": "North pier",
        "created_at": NOW - timedelta(hours=1),
    }
    data.update(overrides)
    return Booking(**data)


def make_multi_product_booking(booking_id: str = "bk-multi", **overrides: Any) -> Booking:
    overrides.setdefault("status", "CONFIRMED")
    return make_booking(
        booking_id,
        products=[
            BookingProduct(id="p1", name="Kayak"),
            BookingProduct(id="p2", name="Picnic"),
        ],
        **overrides,
    )


class FrozenClock:
    """Controllable clock."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier(BookingNotifier):
    """Records emails; templates listed in ``failing`` raise."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self.failing: set[str] = set()
        self.deliver = True

    async def send_booking_email(self, booking, template, template_data) -> Any:
        if template in self.failing:
            raise ConnectionError(f"{template} unavailable")
        self.sent.append((booking.id, template, template_data))
        return self.deliver

    def templates(self) -> list[str]:
        return [template for _, template, _ in self.sent]


class RecordingFulfillment(FulfillmentGateway):
    """Records gateway calls; supports injected failures and delays."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, Any]] = []
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.result: Any = True

    async def _record(self, name: str, booking: Booking, extra: Any = None) -> Any:
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.failures:
            raise self.failures[name]
        self.calls.append((name, booking.id, extra))
        return self.result

    def names(self) -> list[str]:
        return [name for name, _, _ in self.calls]

    async def schedule_ticket_delivery(self, booking):
        return await self._record("schedule_ticket_delivery", booking)

    async def update_inventory_on_confirmation(self, booking):
        return await self._record("update_inventory_on_confirmation", booking)

    async def release_inventory(self, booking):
        return await self._record("release_inventory", booking)

    async def process_refund(self, booking, kind: RefundKind):
        return await self._record("process_refund", booking, kind)

    async def update_loyalty_points(self, booking):
        return await self._record("update_loyalty_points", booking)

    async def generate_completion_certificate(self, booking):
        return await self._record("generate_completion_certificate", booking)

    async def update_financial_records(self, booking, status):
        return await self._record("update_financial_records", booking, status)

    async def create_rebooking_offer(self, booking):
        return await self._record("create_rebooking_offer", booking)


class RecordingScheduler(TransitionScheduler):
    """Keeps scheduled jobs in lists instead of firing them."""

    def __init__(self) -> None:
        self.manager = None
        self.transitions: list[tuple[str, str, datetime]] = []
        self.reviews: list[tuple[str, datetime]] = []

    async def schedule_transition(self, booking_id, target_status, run_at, reason) -> None:
        self.transitions.append((booking_id, target_status, run_at))

    async def schedule_review_request(self, booking_id, run_at) -> None:
        self.reviews.append((booking_id, run_at))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fulfillment():
    return RecordingFulfillment()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def automation_config():
    return AutomationConfig()


@pytest.fixture
def build_manager(clock, notifier, fulfillment, scheduler, automation_config):
    """Factory for a manager over an in-memory store seeded with ``bookings``."""

    def _build(*bookings: Booking, **kwargs: Any) -> BookingStatusManager:
        options = {
            "notifier": notifier,
            "fulfillment": fulfillment,
            "scheduler": scheduler,
            "config": automation_config,
            "clock": clock,
            "side_effect_timeout": 1.0,
        }
        options.update(kwargs)
        return BookingStatusManager(
            repository=InMemoryBookingRepository(list(bookings)),
            **options,
        )

    return _build

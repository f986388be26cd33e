"""Booking status repositories.

The status engine only needs to load, save and enumerate bookings; storage
layout is up to the implementation.
"""

from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from explorer_booking.domain.booking_status import ACTIVE_STATUSES
from explorer_booking.models.booking import BookingDocument
from explorer_booking.schemas.booking import Booking


class BookingRepository(ABC):
    """Abstract booking store used by the status engine."""

    @abstractmethod
    async def load_booking(self, booking_id: str) -> Booking | None:
        """Load a booking, or None when the id does not resolve."""
        pass

    @abstractmethod
    async def save_booking(self, booking: Booking) -> None:
        """Persist a booking (insert or replace)."""
        pass

    @abstractmethod
    async def list_active_bookings(self) -> list[Booking]:
        """Bookings in a status the sweep can still advance."""
        pass

    @abstractmethod
    async def list_all_bookings(self) -> list[Booking]:
        pass


class InMemoryBookingRepository(BookingRepository):
    """Process-local store. Hands out copies so callers never alias stored state."""

    def __init__(self, bookings: list[Booking] | None = None) -> None:
        self._bookings: dict[str, Booking] = {}
        for booking in bookings or []:
            self._bookings[booking.id] = booking.model_copy(deep=True)

    async def load_booking(self, booking_id: str) -> Booking | None:
        booking = self._bookings.get(booking_id)
        return booking.model_copy(deep=True) if booking else None

    async def save_booking(self, booking: Booking) -> None:
        self._bookings[booking.id] = booking.model_copy(deep=True)

    async def list_active_bookings(self) -> list[Booking]:
        return [
            booking.model_copy(deep=True)
            for booking in self._bookings.values()
            if booking.status in ACTIVE_STATUSES
        ]

    async def list_all_bookings(self) -> list[Booking]:
        return [booking.model_copy(deep=True) for booking in self._bookings.values()]


class SqlBookingRepository(BookingRepository):
    """Store bookings as JSON documents in the ``booking_documents`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    @staticmethod
    def _to_booking(record: BookingDocument) -> Booking:
        return Booking.model_validate(record.document)

    async def load_booking(self, booking_id: str) -> Booking | None:
        async with self._session_maker() as db:
            record = await db.get(BookingDocument, booking_id)
            return self._to_booking(record) if record else None

    async def save_booking(self, booking: Booking) -> None:
        document = booking.model_dump(mode="json")
        async with self._session_maker() as db:
            record = await db.get(BookingDocument, booking.id)
            if record is None:
                record = BookingDocument(id=booking.id)
                db.add(record)
            record.status = booking.status
            record.experience_at = booking.date_time
            record.document = document
            await db.commit()

    async def list_active_bookings(self) -> list[Booking]:
        async with self._session_maker() as db:
            result = await db.execute(
                select(BookingDocument)
                .where(BookingDocument.status.in_(sorted(ACTIVE_STATUSES)))
                .order_by(BookingDocument.experience_at)
            )
            return [self._to_booking(record) for record in result.scalars().all()]

    async def list_all_bookings(self) -> list[Booking]:
        async with self._session_maker() as db:
            result = await db.execute(
                select(BookingDocument).order_by(BookingDocument.experience_at)
            )
            return [self._to_booking(record) for record in result.scalars().all()]

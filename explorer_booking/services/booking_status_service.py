"""Booking status management.

Applies validated status transitions, keeps status history and multi-product
aggregates, dispatches per-status actions and runs the time-driven sweep.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from explorer_booking.core.exceptions import AppException, NotFoundError, ValidationError
from explorer_booking.core.locks import BookingLocks, LocalBookingLocks
from explorer_booking.domain.automation import AutomationConfig, due_transition
from explorer_booking.domain.booking_status import (
    STATUS_DEFINITIONS,
    assert_booking_transition,
    calculate_overall_status,
    status_code,
)
from explorer_booking.gateways.base import BookingNotifier, FulfillmentGateway
from explorer_booking.repositories.booking_repository import BookingRepository
from explorer_booking.schemas.booking import (
    Booking,
    StatusHistoryEntry,
    as_utc,
    StatusReport,
    TransitionTiming,
)
from explorer_booking.services.notification_service import NotificationService
from explorer_booking.services.status_actions import SideEffectResult, StatusActionDispatcher
from explorer_booking.services.transition_scheduler import (
    AsyncioTransitionScheduler,
    TransitionScheduler,
)

logger = logging.getLogger(__name__)


@dataclass
class TransitionOutcome:
    """Result of a committed status change."""

    booking: Booking
    from_status: str
    to_status: str
    side_effects: list[SideEffectResult] = field(default_factory=list)

    @property
    def failed_side_effects(self) -> list[SideEffectResult]:
        return [result for result in self.side_effects if not result.succeeded]


@dataclass
class SweepReport:
    """Summary of one sweep pass."""

    checked: int = 0
    transitions: list[tuple[str, str, str]] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class BookingStatusManager:
    """Owns the booking status lifecycle."""

    def __init__(
        self,
        repository: BookingRepository,
        notifier: BookingNotifier,
        fulfillment: FulfillmentGateway,
        scheduler: TransitionScheduler | None = None,
        locks: BookingLocks | None = None,
        config: AutomationConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        side_effect_timeout: float | None = None,
    ) -> None:
        self.repository = repository
        self.notifier = notifier
        self.config = config or AutomationConfig.from_settings()
        self.clock = clock or (lambda: datetime.now(UTC))
        self.locks = locks or LocalBookingLocks()
        self.scheduler = scheduler or AsyncioTransitionScheduler(clock=self.clock)
        self.scheduler.attach(self)
        self.dispatcher = StatusActionDispatcher(
            notifier=notifier,
            fulfillment=fulfillment,
            scheduler=self.scheduler,
            config=self.config,
            timeout=side_effect_timeout,
            clock=self.clock,
        )

    # ==================== TRANSITIONS ====================

    async def update_booking_status(
        self,
        booking_id: str,
        new_status: str,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Booking:
        """Move a booking to ``new_status`` and return the updated booking.

        Raises:
            NotFoundError: If the booking does not exist
            InvalidTransitionError: If the transition is not allowed
            ValidationError: If metadata names a product outside the booking
        """
        outcome = await self.transition_booking(booking_id, new_status, reason, metadata)
        return outcome.booking

    async def transition_booking(
        self,
        booking_id: str,
        new_status: str,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TransitionOutcome:
        """Same as update_booking_status, also reporting side-effect results."""
        metadata = dict(metadata or {})
        new_status = status_code(new_status)

        async with self.locks.hold(booking_id):
            booking = await self.repository.load_booking(booking_id)
            if booking is None:
                raise NotFoundError("Booking", booking_id)

            current_status = booking.status
            assert_booking_transition(current_status, new_status)

            product_id = metadata.get("product_id")
            if product_id is not None and booking.is_multi_product:
                if product_id not in {product.id for product in booking.products}:
                    raise ValidationError(
                        f"Product '{product_id}' is not part of booking {booking.reference}"
                    )

            now = self.clock()
            booking.status = new_status
            booking.last_updated = now
            booking.status_history.append(
                StatusHistoryEntry(
                    from_status=current_status,
                    to_status=new_status,
                    timestamp=now,
                    reason=reason,
                    metadata=metadata,
                    triggered_by=metadata.get("triggered_by") or "system",
                )
            )

            if booking.is_multi_product:
                self._update_multi_product_status(booking, new_status, product_id)

            await self.repository.save_booking(booking)

        logger.info(
            f"Booking {booking.reference}: {current_status} -> {new_status}"
            f" ({metadata.get('triggered_by') or 'system'})"
        )

        try:
            side_effects = await self.dispatcher.dispatch(booking, new_status, current_status)
        except Exception as e:
            logger.error(f"Status actions for booking {booking.reference} aborted: {e}")
            side_effects = [SideEffectResult("dispatch", False, str(e))]
        return TransitionOutcome(booking, current_status, new_status, side_effects)

    def _update_multi_product_status(
        self,
        booking: Booking,
        new_status: str,
        product_id: str | None,
    ) -> None:
        """Fan a transition out to product statuses and recompute the overall status.

        Products without a tracked status start at the booking's new status.
        """
        if booking.product_statuses is None:
            booking.product_statuses = {product.id: new_status for product in booking.products}

        product_statuses = dict(booking.product_statuses)
        if product_id is not None:
            product_statuses[product_id] = new_status
        else:
            product_statuses = {pid: new_status for pid in product_statuses}

        booking.product_statuses = product_statuses
        booking.overall_status = calculate_overall_status(product_statuses)

    async def run_scheduled_transition(
        self,
        booking_id: str,
        target_status: str,
        reason: str | None = None,
    ) -> TransitionOutcome | None:
        """Fire a deferred transition; rejections are logged, never forced."""
        try:
            return await self.transition_booking(
                booking_id,
                target_status,
                reason or f"Auto-scheduled transition to {target_status}",
                {"triggered_by": "scheduler"},
            )
        except AppException as e:
            logger.warning(
                f"Scheduled transition to {target_status} for booking {booking_id} rejected: {e.detail}"
            )
            return None

    async def send_review_request(self, booking_id: str) -> bool:
        """Deferred review request for a completed booking."""
        booking = await self.repository.load_booking(booking_id)
        if booking is None:
            logger.warning(f"Review request skipped, booking {booking_id} not found")
            return False
        if booking.status != "COMPLETED":
            logger.info(f"Review request skipped, booking {booking.reference} is {booking.status}")
            return False
        try:
            sent = await self.notifier.send_booking_email(
                booking,
                NotificationService.REVIEW_REQUEST,
                {
                    "customer_name": booking.lead_traveler.first_name if booking.lead_traveler else None,
                    "booking_reference": booking.reference,
                    "product_name": booking.product_name,
                },
            )
            return sent is True
        except Exception as e:
            logger.error(f"Review request for booking {booking.reference} failed: {e}")
            return False

    # ==================== AUTOMATION ====================

    async def process_scheduled_status_updates(self, now: datetime | None = None) -> SweepReport:
        """Advance active bookings whose time-based transition is due."""
        now = now or self.clock()
        report = SweepReport()

        for booking in await self.repository.list_active_bookings():
            report.checked += 1
            due = due_transition(booking, now, self.config)
            if due is None:
                continue
            try:
                await self.transition_booking(booking.id, due.target, due.reason, due.metadata)
            except AppException as e:
                logger.warning(f"Sweep could not move booking {booking.id} to {due.target}: {e.detail}")
                report.errors[booking.id] = str(e.detail)
            except Exception as e:
                logger.error(f"Sweep failed for booking {booking.id}: {e}")
                report.errors[booking.id] = str(e)
            else:
                report.transitions.append((booking.id, booking.status, due.target))

        if report.transitions or report.errors:
            logger.info(
                f"Status sweep: checked={report.checked}, "
                f"transitioned={len(report.transitions)}, errors={len(report.errors)}"
            )
        return report

    async def cleanup_old_status_history(self, now: datetime | None = None) -> int:
        """Drop history older than the retention window, keeping each booking's latest entry."""
        now = now or self.clock()
        cutoff = now - timedelta(days=self.config.status_history_retention_days)
        removed = 0

        for snapshot in await self.repository.list_all_bookings():
            if len(snapshot.status_history) <= 1:
                continue
            try:
                removed += await self._trim_history(snapshot.id, cutoff)
            except Exception as e:
                logger.error(f"History cleanup failed for booking {snapshot.id}: {e}")

        if removed:
            logger.info(f"Removed {removed} status history entries older than {cutoff.isoformat()}")
        return removed

    async def _trim_history(self, booking_id: str, cutoff: datetime) -> int:
        async with self.locks.hold(booking_id):
            booking = await self.repository.load_booking(booking_id)
            if booking is None or len(booking.status_history) <= 1:
                return 0
            *older, latest = booking.status_history
            kept = [entry for entry in older if entry.timestamp >= cutoff]
            if len(kept) == len(older):
                return 0
            booking.status_history = kept + [latest]
            await self.repository.save_booking(booking)
            return len(older) - len(kept)

    # ==================== QUERIES ====================

    async def get_booking(self, booking_id: str) -> Booking:
        booking = await self.repository.load_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def get_bookings_by_status(
        self,
        status: str,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        product_id: str | None = None,
        customer_id: str | None = None,
    ) -> list[Booking]:
        """Bookings currently in ``status``, optionally filtered.

        Naive date bounds are read as UTC.
        """
        status = status_code(status)
        from_date = as_utc(from_date) if from_date else None
        to_date = as_utc(to_date) if to_date else None
        bookings = []
        for booking in await self.repository.list_all_bookings():
            if booking.status != status:
                continue
            if from_date and booking.date_time < from_date:
                continue
            if to_date and booking.date_time > to_date:
                continue
            if product_id and booking.product_id != product_id:
                continue
            if customer_id and booking.customer_id != customer_id:
                continue
            bookings.append(booking)
        return bookings

    async def generate_status_report(
        self,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> StatusReport:
        """Status counts plus average time between consecutive history entries."""
        from_date = as_utc(from_date) if from_date else None
        to_date = as_utc(to_date) if to_date else None
        bookings = [
            booking
            for booking in await self.repository.list_all_bookings()
            if (from_date is None or booking.date_time >= from_date)
            and (to_date is None or booking.date_time <= to_date)
        ]

        breakdown = {code: 0 for code in STATUS_DEFINITIONS}
        samples: dict[str, list[float]] = defaultdict(list)

        for booking in bookings:
            if booking.status in breakdown:
                breakdown[booking.status] += 1
            history = booking.status_history
            for previous, current in zip(history, history[1:]):
                label = f"{previous.to_status}_to_{current.to_status}"
                samples[label].append((current.timestamp - previous.timestamp).total_seconds())

        return StatusReport(
            total_bookings=len(bookings),
            status_breakdown=breakdown,
            average_processing_time={
                label: TransitionTiming(average=sum(times) / len(times), count=len(times))
                for label, times in samples.items()
            },
            generated_at=self.clock(),
        )

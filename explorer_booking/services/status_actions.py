"""Status side-effect dispatcher.

Routes a committed transition to the actions owed for the new status. Every
action runs on its own with a bounded wait; a failure or timeout is logged
and recorded, never raised, and never retried here.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from explorer_booking.config import settings
from explorer_booking.domain.automation import AutomationConfig, trigger_time
from explorer_booking.gateways.base import (
    NOT_CONFIGURED,
    BookingNotifier,
    FulfillmentGateway,
    RefundKind,
)
from explorer_booking.schemas.booking import Booking
from explorer_booking.services.notification_service import NotificationService
from explorer_booking.services.transition_scheduler import TransitionScheduler

logger = logging.getLogger(__name__)

# Cancelling from these statuses refunds the customer in full
REFUNDABLE_ON_CANCEL = frozenset({"CONFIRMED", "UPCOMING"})


@dataclass
class SideEffectResult:
    """Outcome of one dispatched action."""

    action: str
    succeeded: bool
    error: str | None = None
    skipped: bool = False  # collaborator not configured


class StatusActionDispatcher:
    """Runs the actions tied to each booking status."""

    def __init__(
        self,
        notifier: BookingNotifier,
        fulfillment: FulfillmentGateway,
        scheduler: TransitionScheduler,
        config: AutomationConfig | None = None,
        timeout: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.notifier = notifier
        self.fulfillment = fulfillment
        self.scheduler = scheduler
        self.config = config or AutomationConfig.from_settings()
        self.timeout = timeout if timeout is not None else settings.side_effect_timeout_seconds
        self.clock = clock or (lambda: datetime.now(UTC))
        self._handlers = {
            "CONFIRMED": self._on_confirmed,
            "UPCOMING": self._on_upcoming,
            "EXPLORING": self._on_exploring,
            "COMPLETED": self._on_completed,
            "CANCELLED": self._on_cancelled,
            "REFUNDED": self._on_refunded,
            "PARTIALLY_REFUNDED": self._on_refunded,
            "FAILED": self._on_failed,
        }

    async def dispatch(
        self,
        booking: Booking,
        new_status: str,
        previous_status: str,
    ) -> list[SideEffectResult]:
        """Run every action owed for ``new_status``."""
        handler = self._handlers.get(new_status)
        if handler is None:
            return []

        results: list[SideEffectResult] = []
        await handler(booking, previous_status, results)

        failed = [result.action for result in results if not result.succeeded]
        if failed:
            logger.error(
                f"Status actions failed for booking {booking.reference} "
                f"({previous_status} -> {new_status}): {', '.join(failed)}"
            )
        return results

    async def _run(
        self,
        results: list[SideEffectResult],
        action: str,
        call: Callable[[], Awaitable[Any]],
    ) -> None:
        try:
            outcome = await asyncio.wait_for(call(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Status action '{action}' timed out after {self.timeout}s")
            results.append(SideEffectResult(action, False, f"timed out after {self.timeout}s"))
            return
        except Exception as e:
            logger.error(f"Status action '{action}' failed: {e}")
            results.append(SideEffectResult(action, False, str(e) or type(e).__name__))
            return

        if outcome == NOT_CONFIGURED:
            logger.debug(f"Status action '{action}' skipped, collaborator not configured")
            results.append(SideEffectResult(action, True, skipped=True))
        elif outcome is False:
            results.append(SideEffectResult(action, False, "not delivered"))
        else:
            results.append(SideEffectResult(action, True))

    async def _schedule_transition(
        self,
        results: list[SideEffectResult],
        booking: Booking,
        target: str,
    ) -> None:
        run_at = trigger_time(booking, target, self.config)
        if run_at is None or run_at <= self.clock():
            # Already due: the periodic sweep picks it up
            logger.debug(f"Not scheduling {target} for {booking.reference}, trigger time passed")
            return
        await self._run(
            results,
            f"schedule_{target.lower()}_transition",
            lambda: self.scheduler.schedule_transition(
                booking.id, target, run_at, f"Auto-scheduled transition to {target}"
            ),
        )

    def _email(
        self,
        results: list[SideEffectResult],
        booking: Booking,
        template: str,
        data: dict[str, Any],
    ) -> Awaitable[None]:
        return self._run(
            results,
            f"email_{template}",
            lambda: self.notifier.send_booking_email(booking, template, data),
        )

    @staticmethod
    def _customer_name(booking: Booking) -> str | None:
        traveler = booking.lead_traveler
        return traveler.first_name if traveler else None

    async def _on_confirmed(self, booking: Booking, previous: str, results: list) -> None:
        await self._email(results, booking, NotificationService.BOOKING_CONFIRMATION, {
            "booking_reference": booking.reference,
            "customer_name": self._customer_name(booking),
            "product_name": booking.product_name,
            "date_time": booking.date_time,
            "total_price": booking.total_price,
        })
        await self._run(
            results, "schedule_ticket_delivery",
            lambda: self.fulfillment.schedule_ticket_delivery(booking),
        )
        await self._run(
            results, "update_inventory_on_confirmation",
            lambda: self.fulfillment.update_inventory_on_confirmation(booking),
        )
        await self._schedule_transition(results, booking, "UPCOMING")

    async def _on_upcoming(self, booking: Booking, previous: str, results: list) -> None:
        await self._email(results, booking, NotificationService.EXPERIENCE_REMINDER, {
            "customer_name": self._customer_name(booking),
            "product_name": booking.product_name,
            "date_time": booking.date_time,
            "meeting_point": booking.meeting_point,
        })
        await self._schedule_transition(results, booking, "EXPLORING")

    async def _on_exploring(self, booking: Booking, previous: str, results: list) -> None:
        logger.info(f"Experience started for booking: {booking.reference}")
        await self._schedule_transition(results, booking, "COMPLETED")

    async def _on_completed(self, booking: Booking, previous: str, results: list) -> None:
        run_at = self.clock() + timedelta(hours=self.config.review_request_delay_hours)
        await self._run(
            results, "schedule_review_request",
            lambda: self.scheduler.schedule_review_request(booking.id, run_at),
        )
        await self._run(
            results, "update_loyalty_points",
            lambda: self.fulfillment.update_loyalty_points(booking),
        )
        await self._run(
            results, "generate_completion_certificate",
            lambda: self.fulfillment.generate_completion_certificate(booking),
        )

    async def _on_cancelled(self, booking: Booking, previous: str, results: list) -> None:
        await self._email(results, booking, NotificationService.BOOKING_CANCELLATION, {
            "customer_name": self._customer_name(booking),
            "booking_reference": booking.reference,
            "cancellation_reason": booking.cancellation_reason,
            "refund_amount": booking.refund_amount,
        })
        await self._run(
            results, "release_inventory",
            lambda: self.fulfillment.release_inventory(booking),
        )
        if previous in REFUNDABLE_ON_CANCEL:
            await self._run(
                results, "process_refund",
                lambda: self.fulfillment.process_refund(booking, RefundKind.FULL),
            )

    async def _on_refunded(self, booking: Booking, previous: str, results: list) -> None:
        refund_status = booking.status
        await self._email(results, booking, NotificationService.REFUND_CONFIRMATION, {
            "customer_name": self._customer_name(booking),
            "booking_reference": booking.reference,
            "refund_amount": booking.refund_amount,
            "refund_type": "Partial" if refund_status == "PARTIALLY_REFUNDED" else "Full",
        })
        await self._run(
            results, "update_financial_records",
            lambda: self.fulfillment.update_financial_records(booking, refund_status),
        )

    async def _on_failed(self, booking: Booking, previous: str, results: list) -> None:
        await self._email(results, booking, NotificationService.BOOKING_FAILED, {
            "customer_name": self._customer_name(booking),
            "booking_reference": booking.reference,
            "failure_reason": booking.failure_reason,
        })
        await self._run(
            results, "release_inventory",
            lambda: self.fulfillment.release_inventory(booking),
        )
        await self._run(
            results, "create_rebooking_offer",
            lambda: self.fulfillment.create_rebooking_offer(booking),
        )

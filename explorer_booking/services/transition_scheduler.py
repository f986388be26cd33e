"""Deferred status transitions and review requests.

Two backends:
- AsyncioTransitionScheduler: in-process timers, lost on restart (the periodic
  sweep re-derives due transitions).
- CeleryTransitionScheduler: durable ``apply_async(eta=...)`` jobs on the broker.

A scheduled transition is re-validated against the transition table when it
fires; there is no other cancellation mechanism.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from explorer_booking.services.booking_status_service import BookingStatusManager

logger = logging.getLogger(__name__)


class TransitionScheduler(ABC):
    """Schedules future work for a booking."""

    def attach(self, manager: "BookingStatusManager") -> None:
        """Bind the manager that executes fired jobs."""
        self.manager = manager

    @abstractmethod
    async def schedule_transition(
        self,
        booking_id: str,
        target_status: str,
        run_at: datetime,
        reason: str,
    ) -> None:
        pass

    @abstractmethod
    async def schedule_review_request(self, booking_id: str, run_at: datetime) -> None:
        pass


class AsyncioTransitionScheduler(TransitionScheduler):
    """In-memory timers keyed by booking id and job kind.

    Scheduling the same key again replaces the pending timer.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self.manager: "BookingStatusManager | None" = None
        self.clock = clock or (lambda: datetime.now(UTC))
        self._timers: dict[tuple[str, str], asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> dict[tuple[str, str], float]:
        """Pending jobs mapped to their loop fire time."""
        return {key: handle.when() for key, handle in self._timers.items()}

    def _schedule(self, key: tuple[str, str], run_at: datetime, job) -> None:
        loop = asyncio.get_running_loop()
        delay = max(0.0, (run_at - self.clock()).total_seconds())

        existing = self._timers.pop(key, None)
        if existing is not None:
            existing.cancel()

        def fire() -> None:
            self._timers.pop(key, None)
            task = loop.create_task(job())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        self._timers[key] = loop.call_later(delay, fire)

    async def schedule_transition(
        self,
        booking_id: str,
        target_status: str,
        run_at: datetime,
        reason: str,
    ) -> None:
        if self.manager is None:
            raise RuntimeError("Scheduler is not attached to a status manager")
        manager = self.manager

        async def job() -> None:
            await manager.run_scheduled_transition(booking_id, target_status, reason)

        self._schedule((booking_id, target_status), run_at, job)
        logger.info(f"Scheduled {target_status} for booking {booking_id} at {run_at.isoformat()}")

    async def schedule_review_request(self, booking_id: str, run_at: datetime) -> None:
        if self.manager is None:
            raise RuntimeError("Scheduler is not attached to a status manager")
        manager = self.manager

        async def job() -> None:
            await manager.send_review_request(booking_id)

        self._schedule((booking_id, "review_request"), run_at, job)
        logger.info(f"Scheduled review request for booking {booking_id} at {run_at.isoformat()}")

    def cancel_all(self) -> None:
        """Drop pending timers and running jobs (shutdown)."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in list(self._tasks):
            task.cancel()


class CeleryTransitionScheduler(TransitionScheduler):
    """Durable scheduling through Celery ETA tasks."""

    async def schedule_transition(
        self,
        booking_id: str,
        target_status: str,
        run_at: datetime,
        reason: str,
    ) -> None:
        from explorer_booking.tasks import apply_scheduled_transition

        await asyncio.to_thread(
            apply_scheduled_transition.apply_async,
            args=[booking_id, target_status, reason],
            eta=run_at,
        )
        logger.info(f"Queued {target_status} for booking {booking_id} at {run_at.isoformat()}")

    async def schedule_review_request(self, booking_id: str, run_at: datetime) -> None:
        from explorer_booking.tasks import send_review_request

        await asyncio.to_thread(
            send_review_request.apply_async,
            args=[booking_id],
            eta=run_at,
        )
        logger.info(f"Queued review request for booking {booking_id} at {run_at.isoformat()}")

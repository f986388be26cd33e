"""Celery background tasks for booking status automation.

Tasks never retry a status change: a failed or rejected transition is
logged and the next sweep re-evaluates the booking.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from celery import shared_task
from sqlalchemy.ext.asyncio import async_sessionmaker

from explorer_booking.config import settings
from explorer_booking.database import create_engine
from explorer_booking.services.booking_status_service import BookingStatusManager
from explorer_booking.services.factory import build_status_manager, close_status_manager
from explorer_booking.worker import celery_app  # noqa: F401  makes the configured app current


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


@asynccontextmanager
async def task_status_manager() -> AsyncGenerator[BookingStatusManager, None]:
    """Status manager with its own engine, disposed when the task ends."""
    engine = create_engine()
    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    manager = build_status_manager(
        settings.model_copy(update={"booking_store": "sql", "transition_scheduler": "celery"}),
        session_maker=session_maker,
    )
    try:
        yield manager
    finally:
        await close_status_manager(manager)
        await engine.dispose()


# ==================== STATUS AUTOMATION ====================


@shared_task
def process_scheduled_status_updates():
    """Advance active bookings whose time-based transition is due.

    Scheduled by beat every ``status_sweep_interval_seconds``.
    """
    report = run_async(_process_scheduled_status_updates())
    return {
        "status": "success",
        "checked": report.checked,
        "transitioned": len(report.transitions),
        "errors": report.errors,
    }


async def _process_scheduled_status_updates():
    async with task_status_manager() as manager:
        return await manager.process_scheduled_status_updates()


@shared_task
def apply_scheduled_transition(booking_id: str, target_status: str, reason: str | None = None):
    """Fire a deferred transition queued with an ETA."""
    outcome = run_async(_apply_scheduled_transition(booking_id, target_status, reason))
    if outcome is None:
        return {"status": "rejected", "booking_id": booking_id, "target": target_status}
    return {
        "status": "success",
        "booking_id": booking_id,
        "target": target_status,
        "failed_side_effects": [result.action for result in outcome.failed_side_effects],
    }


async def _apply_scheduled_transition(booking_id: str, target_status: str, reason: str | None):
    async with task_status_manager() as manager:
        return await manager.run_scheduled_transition(booking_id, target_status, reason)


@shared_task
def send_review_request(booking_id: str):
    """Ask the customer for a review after a completed experience."""
    sent = run_async(_send_review_request(booking_id))
    return {"status": "success" if sent else "skipped", "booking_id": booking_id}


async def _send_review_request(booking_id: str) -> bool:
    async with task_status_manager() as manager:
        return await manager.send_review_request(booking_id)


# ==================== CLEANUP TASKS ====================


@shared_task
def cleanup_status_history():
    """Remove status history entries past the retention window."""
    removed = run_async(_cleanup_status_history())
    return {"status": "success", "removed": removed}


async def _cleanup_status_history() -> int:
    async with task_status_manager() as manager:
        return await manager.cleanup_old_status_history()

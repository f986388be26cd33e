"""Background loops for booking status automation."""

import asyncio
import logging

from explorer_booking.config import settings
from explorer_booking.services.booking_status_service import BookingStatusManager

logger = logging.getLogger(__name__)

# Flag to stop the background tasks
_stop_automation = False


async def _sleep_until_next_run(interval: int) -> None:
    """Wait for the next interval, checking the stop flag every second."""
    for _ in range(max(1, interval)):
        if _stop_automation:
            break
        await asyncio.sleep(1)


async def run_status_sweep_loop(manager: BookingStatusManager, interval: int | None = None) -> None:
    """Run the status sweep every ``interval`` seconds."""
    interval = interval or settings.status_sweep_interval_seconds
    logger.info(f"Booking status sweep started (every {interval}s)")

    while not _stop_automation:
        try:
            await manager.process_scheduled_status_updates()
        except Exception as e:
            logger.error(f"Scheduled status update error: {e}")

        await _sleep_until_next_run(interval)

    logger.info("Booking status sweep stopped")


async def run_history_cleanup_loop(manager: BookingStatusManager, interval: int | None = None) -> None:
    """Purge old status history every ``interval`` seconds."""
    interval = interval or settings.history_cleanup_interval_seconds
    logger.info(f"Status history cleanup started (every {interval}s)")

    while not _stop_automation:
        await _sleep_until_next_run(interval)
        if _stop_automation:
            break
        try:
            await manager.cleanup_old_status_history()
        except Exception as e:
            logger.error(f"Status history cleanup error: {e}")

    logger.info("Status history cleanup stopped")


def start_status_automation(manager: BookingStatusManager) -> list[asyncio.Task]:
    """Start sweep and cleanup loops on the running event loop."""
    global _stop_automation
    _stop_automation = False
    return [
        asyncio.create_task(run_status_sweep_loop(manager)),
        asyncio.create_task(run_history_cleanup_loop(manager)),
    ]


async def stop_status_automation(tasks: list[asyncio.Task]) -> None:
    """Signal the loops to stop and wait for them."""
    global _stop_automation
    _stop_automation = True
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass

"""Build a BookingStatusManager from configuration."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from explorer_booking.config import Settings, settings
from explorer_booking.core.locks import BookingLocks, LocalBookingLocks, RedisBookingLocks
from explorer_booking.database import get_session_maker
from explorer_booking.domain.automation import AutomationConfig
from explorer_booking.repositories.booking_repository import (
    BookingRepository,
    InMemoryBookingRepository,
    SqlBookingRepository,
)
from explorer_booking.services.booking_status_service import BookingStatusManager
from explorer_booking.services.fulfillment_service import FulfillmentService
from explorer_booking.services.notification_service import NotificationService
from explorer_booking.services.transition_scheduler import (
    AsyncioTransitionScheduler,
    CeleryTransitionScheduler,
    TransitionScheduler,
)


def build_repository(
    config: Settings,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> BookingRepository:
    if config.booking_store == "sql":
        return SqlBookingRepository(session_maker or get_session_maker())
    return InMemoryBookingRepository()


def build_locks(config: Settings) -> BookingLocks:
    """Per-booking locks matching the store. The sql store defaults to redis locks.

    Raises:
        ValueError: If local locks are configured for the SQL store
    """
    backend = config.booking_lock_backend or ("redis" if config.booking_store == "sql" else "local")
    if backend == "local" and config.booking_store == "sql":
        raise ValueError(
            "booking_lock_backend=local cannot serialise transitions on the shared sql store; "
            "use redis"
        )
    if backend == "redis":
        return RedisBookingLocks(redis_url=config.redis_url)
    return LocalBookingLocks()


def build_scheduler(config: Settings) -> TransitionScheduler:
    if config.transition_scheduler == "celery":
        return CeleryTransitionScheduler()
    return AsyncioTransitionScheduler()


def build_status_manager(
    config: Settings | None = None,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    repository: BookingRepository | None = None,
) -> BookingStatusManager:
    """Wire the status manager with the configured collaborators."""
    config = config or settings
    return BookingStatusManager(
        repository=repository or build_repository(config, session_maker),
        notifier=NotificationService(api_key=config.sendgrid_api_key),
        fulfillment=FulfillmentService(
            webhook_url=config.fulfillment_webhook_url,
            webhook_secret=config.fulfillment_webhook_secret,
        ),
        scheduler=build_scheduler(config),
        locks=build_locks(config),
        config=AutomationConfig.from_settings(config),
        side_effect_timeout=config.side_effect_timeout_seconds,
    )


async def close_status_manager(manager: BookingStatusManager) -> None:
    """Release network clients and timers held by a manager."""
    if isinstance(manager.scheduler, AsyncioTransitionScheduler):
        manager.scheduler.cancel_all()
    for client in (manager.notifier, manager.dispatcher.fulfillment, manager.locks):
        close = getattr(client, "close", None)
        if close is not None:
            await close()

"""Per-booking mutual exclusion for status mutations.

A scheduled transition and the periodic sweep may race on the same booking;
every load-validate-save cycle runs while holding the booking's lock.
Different bookings never contend.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import redis.asyncio as redis

from explorer_booking.config import settings


class BookingLocks(ABC):
    """Lock provider keyed by booking id."""

    @abstractmethod
    def hold(self, booking_id: str) -> AbstractAsyncContextManager[None]:
        """Async context manager holding the lock for ``booking_id``."""
        pass


class LocalBookingLocks(BookingLocks):
    """asyncio locks for a single process. Idle locks are discarded."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, booking_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(booking_id, asyncio.Lock())
        self._users[booking_id] = self._users.get(booking_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[booking_id] -= 1
            if self._users[booking_id] == 0:
                del self._users[booking_id]
                del self._locks[booking_id]

    def __len__(self) -> int:
        return len(self._locks)


class RedisBookingLocks(BookingLocks):
    """Redis locks shared by API processes and Celery workers."""

    def __init__(
        self,
        redis_url: str | None = None,
        timeout: int | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        self.redis_url = redis_url or settings.redis_url
        self.timeout = timeout or settings.booking_lock_timeout_seconds
        self._redis = client

    def get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    @asynccontextmanager
    async def hold(self, booking_id: str) -> AsyncIterator[None]:
        lock = self.get_redis().lock(
            f"booking_status_lock:{booking_id}",
            timeout=self.timeout,
            blocking_timeout=self.timeout,
        )
        async with lock:
            yield

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()

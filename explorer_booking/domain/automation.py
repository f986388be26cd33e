"""Time-driven booking status rules.

Pure functions shared by the periodic sweep and the deferred transition
scheduler, so both agree on when a booking is due to move.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from explorer_booking.config import Settings, settings
from explorer_booking.schemas.booking import Booking


@dataclass(frozen=True)
class AutomationConfig:
    """Thresholds for automatic status progression (hours)."""

    pending_timeout_hours: float = 24
    upcoming_threshold_hours: float = 24
    exploring_start_offset_hours: float = 0
    completion_offset_hours: float = 2
    review_request_delay_hours: float = 2
    status_history_retention_days: int = 365

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "AutomationConfig":
        config = config or settings
        return cls(
            pending_timeout_hours=config.pending_timeout_hours,
            upcoming_threshold_hours=config.upcoming_threshold_hours,
            exploring_start_offset_hours=config.exploring_start_offset_hours,
            completion_offset_hours=config.completion_offset_hours,
            review_request_delay_hours=config.review_request_delay_hours,
            status_history_retention_days=config.status_history_retention_days,
        )


@dataclass(frozen=True)
class DueTransition:
    """A transition the sweep should attempt."""

    target: str
    reason: str
    metadata: dict[str, Any]


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def experience_duration(booking: Booking, config: AutomationConfig) -> float:
    """Experience length in hours, falling back to the configured default."""
    return booking.duration or config.completion_offset_hours


def completion_time(booking: Booking, config: AutomationConfig) -> datetime:
    return booking.date_time + timedelta(hours=experience_duration(booking, config))


def trigger_time(booking: Booking, target: str, config: AutomationConfig) -> datetime | None:
    """When a scheduled transition to ``target`` should fire, if it is automatic."""
    if target == "UPCOMING":
        return booking.date_time - timedelta(hours=config.upcoming_threshold_hours)
    if target == "EXPLORING":
        return booking.date_time - timedelta(hours=config.exploring_start_offset_hours)
    if target == "COMPLETED":
        return completion_time(booking, config)
    return None


def due_transition(booking: Booking, now: datetime, config: AutomationConfig) -> DueTransition | None:
    """Transition a booking is due for at ``now``, or None."""
    hours_diff = _hours(booking.date_time - now)

    if booking.status == "PENDING":
        hours_old = _hours(now - booking.created_at)
        if hours_old >= config.pending_timeout_hours:
            return DueTransition(
                "FAILED",
                "auto-expired",
                {"triggered_by": "automation", "hours_old": round(hours_old, 2)},
            )

    elif booking.status == "CONFIRMED":
        if 0 < hours_diff <= config.upcoming_threshold_hours:
            return DueTransition(
                "UPCOMING",
                f"Auto-updated: {config.upcoming_threshold_hours:g} hours before experience",
                {"triggered_by": "automation", "hours_diff": round(hours_diff, 2)},
            )

    elif booking.status == "UPCOMING":
        if hours_diff <= config.exploring_start_offset_hours:
            return DueTransition(
                "EXPLORING",
                "Auto-updated: Experience started",
                {"triggered_by": "automation"},
            )

    elif booking.status == "EXPLORING":
        if now >= completion_time(booking, config):
            return DueTransition(
                "COMPLETED",
                "Auto-updated: Experience completed",
                {"triggered_by": "automation", "duration": experience_duration(booking, config)},
            )

    return None

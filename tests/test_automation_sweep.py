"""
Time-driven status sweep and history cleanup tests
"""
import asyncio
from datetime import timedelta

from conftest import NOW, make_booking
from explorer_booking.domain.automation import AutomationConfig, due_transition, trigger_time
from explorer_booking.repositories.booking_repository import InMemoryBookingRepository
from explorer_booking.schemas.booking import StatusHistoryEntry


def history_entry(from_status, to_status, age_days):
    return StatusHistoryEntry(
        from_status=from_status,
        to_status=to_status,
        timestamp=NOW - timedelta(days=age_days),
    )


class TestDueTransition:
    """Pure due-transition rules"""

    config = AutomationConfig()

    def test_pending_expires_after_timeout(self):
        booking = make_booking(created_at=NOW - timedelta(hours=25))

        due = due_transition(booking, NOW, self.config)

        assert due.target == "FAILED"
        assert due.reason == "auto-expired"
        assert due.metadata == {"triggered_by": "automation", "hours_old": 25.0}

    def test_recent_pending_is_left_alone(self):
        booking = make_booking(created_at=NOW - timedelta(hours=23))

        assert due_transition(booking, NOW, self.config) is None

    def test_confirmed_inside_window(self):
        booking = make_booking(status="CONFIRMED", date_time=NOW + timedelta(hours=10))

        due = due_transition(booking, NOW, self.config)

        assert due.target == "UPCOMING"
        assert due.metadata["triggered_by"] == "automation"

    def test_confirmed_outside_window(self):
        booking = make_booking(status="CONFIRMED", date_time=NOW + timedelta(hours=30))

        assert due_transition(booking, NOW, self.config) is None

    def test_confirmed_in_the_past_is_not_upcoming(self):
        booking = make_booking(status="CONFIRMED", date_time=NOW - timedelta(hours=1))

        assert due_transition(booking, NOW, self.config) is None

    def test_upcoming_starts_at_experience_time(self):
        booking = make_booking(status="UPCOMING", date_time=NOW)

        assert due_transition(booking, NOW, self.config).target == "EXPLORING"
        assert due_transition(booking, NOW - timedelta(minutes=5), self.config) is None

    def test_exploring_completes_after_duration(self):
        booking = make_booking(status="EXPLORING", date_time=NOW - timedelta(hours=3), duration=3)

        due = due_transition(booking, NOW, self.config)

        assert due.target == "COMPLETED"
        assert due.metadata["duration"] == 3
        assert due_transition(booking, NOW - timedelta(minutes=1), self.config) is None

    def test_terminal_statuses_never_move(self):
        for status in ("COMPLETED", "CANCELLED", "REFUNDED", "FAILED", "PARTIALLY_REFUNDED"):
            booking = make_booking(status=status, created_at=NOW - timedelta(days=30))
            assert due_transition(booking, NOW, self.config) is None

    def test_trigger_times_match_thresholds(self):
        booking = make_booking(date_time=NOW, duration=1.5)

        assert trigger_time(booking, "UPCOMING", self.config) == NOW - timedelta(hours=24)
        assert trigger_time(booking, "EXPLORING", self.config) == NOW
        assert trigger_time(booking, "COMPLETED", self.config) == NOW + timedelta(hours=1.5)
        assert trigger_time(booking, "REFUNDED", self.config) is None


class TestStatusSweep:
    """process_scheduled_status_updates"""

    def test_sweep_applies_due_transitions(self, build_manager):
        manager = build_manager(
            make_booking("expired", created_at=NOW - timedelta(hours=25)),
            make_booking("fresh", created_at=NOW - timedelta(hours=23)),
            make_booking("soon", status="CONFIRMED", date_time=NOW + timedelta(hours=10)),
            make_booking("later", status="CONFIRMED", date_time=NOW + timedelta(hours=30)),
            make_booking("started", status="UPCOMING", date_time=NOW - timedelta(minutes=1)),
            make_booking("over", status="EXPLORING", date_time=NOW - timedelta(hours=4), duration=3),
            make_booking("done", status="COMPLETED", date_time=NOW - timedelta(days=2)),
        )

        async def scenario():
            report = await manager.process_scheduled_status_updates()
            statuses = {
                booking.id: booking.status for booking in await manager.repository.list_all_bookings()
            }
            expired = await manager.get_booking("expired")
            return report, statuses, expired

        report, statuses, expired = asyncio.run(scenario())

        assert report.checked == 6
        assert report.errors == {}
        assert sorted(report.transitions) == [
            ("expired", "PENDING", "FAILED"),
            ("over", "EXPLORING", "COMPLETED"),
            ("soon", "CONFIRMED", "UPCOMING"),
            ("started", "UPCOMING", "EXPLORING"),
        ]
        assert statuses == {
            "expired": "FAILED",
            "fresh": "PENDING",
            "soon": "UPCOMING",
            "later": "CONFIRMED",
            "started": "EXPLORING",
            "over": "COMPLETED",
            "done": "COMPLETED",
        }
        entry = expired.status_history[-1]
        assert entry.reason == "auto-expired"
        assert entry.triggered_by == "automation"
        assert entry.metadata["hours_old"] == 25.0

    def test_second_sweep_is_a_no_op(self, build_manager):
        manager = build_manager(make_booking("expired", created_at=NOW - timedelta(hours=25)))

        async def scenario():
            await manager.process_scheduled_status_updates()
            return await manager.process_scheduled_status_updates()

        report = asyncio.run(scenario())

        assert report.checked == 0
        assert report.transitions == []

    def test_one_failing_booking_does_not_stop_the_sweep(self, build_manager):
        class FlakyRepository(InMemoryBookingRepository):
            async def save_booking(self, booking):
                if booking.id == "broken":
                    raise RuntimeError("disk full")
                await super().save_booking(booking)

        manager = build_manager()
        manager.repository = FlakyRepository([
            make_booking("broken", created_at=NOW - timedelta(hours=30)),
            make_booking("healthy", created_at=NOW - timedelta(hours=30)),
        ])

        async def scenario():
            report = await manager.process_scheduled_status_updates()
            return report, await manager.get_booking("broken"), await manager.get_booking("healthy")

        report, broken, healthy = asyncio.run(scenario())

        assert report.errors == {"broken": "disk full"}
        assert report.transitions == [("healthy", "PENDING", "FAILED")]
        assert broken.status == "PENDING"
        assert healthy.status == "FAILED"

    def test_sweep_uses_explicit_time(self, build_manager):
        manager = build_manager(make_booking(status="CONFIRMED", date_time=NOW + timedelta(hours=30)))

        report = asyncio.run(manager.process_scheduled_status_updates(now=NOW + timedelta(hours=8)))

        assert report.transitions == [("bk-1", "CONFIRMED", "UPCOMING")]


class TestHistoryCleanup:
    """cleanup_old_status_history"""

    def test_old_entries_are_removed(self, build_manager):
        manager = build_manager(
            make_booking(
                status="COMPLETED",
                status_history=[
                    history_entry("PENDING", "CONFIRMED", 400),
                    history_entry("CONFIRMED", "UPCOMING", 380),
                    history_entry("UPCOMING", "EXPLORING", 10),
                    history_entry("EXPLORING", "COMPLETED", 9),
                ],
            )
        )

        async def scenario():
            removed = await manager.cleanup_old_status_history()
            return removed, await manager.get_booking("bk-1")

        removed, booking = asyncio.run(scenario())

        assert removed == 2
        assert [entry.to_status for entry in booking.status_history] == ["EXPLORING", "COMPLETED"]

    def test_latest_entry_is_always_kept(self, build_manager):
        manager = build_manager(
            make_booking(
                "old",
                status="REFUNDED",
                status_history=[
                    history_entry("PENDING", "CONFIRMED", 700),
                    history_entry("CONFIRMED", "CANCELLED", 650),
                    history_entry("CANCELLED", "REFUNDED", 600),
                ],
            ),
            make_booking(
                "single",
                status="CONFIRMED",
                status_history=[history_entry("PENDING", "CONFIRMED", 500)],
            ),
        )

        async def scenario():
            removed = await manager.cleanup_old_status_history()
            return removed, await manager.get_booking("old"), await manager.get_booking("single")

        removed, old, single = asyncio.run(scenario())

        assert removed == 2
        assert [entry.to_status for entry in old.status_history] == ["REFUNDED"]
        assert len(single.status_history) == 1

    def test_recent_history_is_untouched(self, build_manager):
        manager = build_manager(
            make_booking(
                status="UPCOMING",
                status_history=[
                    history_entry("PENDING", "CONFIRMED", 3),
                    history_entry("CONFIRMED", "UPCOMING", 1),
                ],
            )
        )

        assert asyncio.run(manager.cleanup_old_status_history()) == 0

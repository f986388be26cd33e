"""
Booking status API tests
"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from conftest import NOW, make_booking, make_multi_product_booking
from explorer_booking.config import settings
from explorer_booking.main import create_application

API = "/api/v1/bookings"


@pytest.fixture
def manager(build_manager):
    return build_manager(
        make_booking("bk-1"),
        make_booking("bk-2", status="CONFIRMED", date_time=NOW + timedelta(days=5)),
        make_multi_product_booking(product_statuses={"p1": "CONFIRMED", "p2": "CONFIRMED"}),
    )


@pytest.fixture
def client(manager, monkeypatch):
    """Test client serving the injected manager, without background loops."""
    monkeypatch.setattr(settings, "automation_enabled", False)
    app = create_application(manager)
    with TestClient(app) as test_client:
        yield test_client


class TestStatusEndpoints:
    """Read endpoints"""

    def test_list_statuses(self, client):
        response = client.get(f"{API}/statuses")

        assert response.status_code == 200
        statuses = response.json()
        assert [status["code"] for status in statuses][:3] == ["PENDING", "FAILED", "CONFIRMED"]
        assert len(statuses) == 9
        refunded = next(status for status in statuses if status["code"] == "REFUNDED")
        assert refunded["allowed_transitions"] == []

    def test_get_booking_status(self, client):
        response = client.get(f"{API}/bk-1/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["booking_reference"] == "EXP-bk-1"
        assert data["display"]["label"] == "Pending Payment"
        assert data["allowed_transitions"] == ["CONFIRMED", "FAILED", "CANCELLED"]
        assert response.headers["X-Request-ID"]

    def test_get_missing_booking(self, client):
        response = client.get(f"{API}/nope/status")

        assert response.status_code == 404
        assert response.json()["detail"] == "Booking with ID 'nope' not found"

    def test_list_by_status(self, client):
        response = client.get(f"{API}/", params={"status": "CONFIRMED"})

        assert response.status_code == 200
        assert sorted(item["id"] for item in response.json()) == ["bk-2", "bk-multi"]

    def test_list_rejects_unknown_status(self, client):
        response = client.get(f"{API}/", params={"status": "ON_HOLD"})

        assert response.status_code == 422

    def test_report(self, client):
        client.patch(f"{API}/bk-1/status", json={"status": "CONFIRMED"})

        response = client.get(f"{API}/report")

        assert response.status_code == 200
        data = response.json()
        assert data["total_bookings"] == 3
        assert data["status_breakdown"]["CONFIRMED"] == 3

    def test_report_accepts_naive_dates(self, client):
        response = client.get(f"{API}/report", params={"from_date": "2025-01-01T00:00:00"})

        assert response.status_code == 200
        assert response.json()["total_bookings"] == 3

    def test_list_accepts_naive_dates(self, client):
        response = client.get(f"{API}/", params={"status": "PENDING", "to_date": "2030-01-01"})

        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == ["bk-1"]


class TestUpdateStatus:
    """PATCH /{booking_id}/status"""

    def test_valid_transition(self, client, notifier):
        response = client.patch(
            f"{API}/bk-1/status",
            json={"status": "CONFIRMED", "reason": "Payment received"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CONFIRMED"
        entry = data["status_history"][-1]
        assert entry["from_status"] == "PENDING"
        assert entry["reason"] == "Payment received"
        assert entry["triggered_by"] == "admin"
        assert {effect["action"] for effect in data["side_effects"]} >= {
            "email_booking_confirmation",
            "schedule_ticket_delivery",
        }
        assert notifier.templates() == ["booking_confirmation"]

    def test_invalid_transition(self, client):
        response = client.patch(f"{API}/bk-1/status", json={"status": "COMPLETED"})

        assert response.status_code == 409
        assert response.json() == {
            "detail": "Invalid status transition from PENDING to COMPLETED",
            "from_status": "PENDING",
            "to_status": "COMPLETED",
        }

    def test_missing_booking(self, client):
        response = client.patch(f"{API}/nope/status", json={"status": "CONFIRMED"})

        assert response.status_code == 404

    def test_product_level_cancellation(self, client):
        response = client.patch(
            f"{API}/bk-multi/status",
            json={"status": "CANCELLED", "product_id": "p2", "triggered_by": "support"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["product_statuses"] == {"p1": "CONFIRMED", "p2": "CANCELLED"}
        assert data["overall_status"] == "CANCELLED"
        assert data["display"]["label"] == "Mixed Status"
        assert data["status_history"][-1]["triggered_by"] == "support"

    def test_unknown_product(self, client):
        response = client.patch(
            f"{API}/bk-multi/status",
            json={"status": "CANCELLED", "product_id": "p9"},
        )

        assert response.status_code == 422

    def test_failed_side_effects_are_reported(self, client, fulfillment):
        fulfillment.failures["release_inventory"] = RuntimeError("inventory down")

        response = client.patch(f"{API}/bk-2/status", json={"status": "CANCELLED"})

        assert response.status_code == 200
        effects = {effect["action"]: effect for effect in response.json()["side_effects"]}
        assert effects["release_inventory"]["succeeded"] is False
        assert effects["release_inventory"]["error"] == "inventory down"
        assert effects["process_refund"]["succeeded"] is True
        assert effects["process_refund"]["skipped"] is False


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

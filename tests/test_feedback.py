"""Tests for customer feedback, employee ratings and feedback links."""
from __future__ import annotations

from unittest.mock import patch

import pytest

from salonbook import create_app
from salonbook.config import TestingConfig
from salonbook.extensions import db
from salonbook.models import Appointment, Employee
from salonbook.notifications import FeedbackNotifier


@pytest.fixture
def completed(client, catalog, booking_payload, employee_id, admin_headers) -> int:
    created = client.post("/appointments", json=booking_payload(employee_id=employee_id))
    appointment_id = created.json["appointment"]["id"]
    client.put(f"/appointments/{appointment_id}/status", json={"status": "completed"}, headers=admin_headers)
    return appointment_id


def test_feedback_updates_employee_rating(client, completed, employee_id, app) -> None:
    response = client.post(
        f"/appointments/{completed}/feedback",
        json={"phone": "9876543210", "rating": 4, "feedback": "Great fade"},
    )

    assert response.status_code == 200
    assert response.json["rating"] == 4
    with app.app_context():
        appointment = db.session.get(Appointment, completed)
        assert appointment.feedback == "Great fade"
        assert appointment.feedback_at is not None
        employee = db.session.get(Employee, employee_id)
        assert employee.rating == 4.0
        assert employee.rating_count == 1


def test_resubmitted_feedback_replaces_previous_rating(client, completed, employee_id, app) -> None:
    client.post(f"/appointments/{completed}/feedback", json={"phone": "9876543210", "rating": 5})
    client.post(f"/appointments/{completed}/feedback", json={"phone": "9876543210", "rating": 2})

    with app.app_context():
        employee = db.session.get(Employee, employee_id)
        assert employee.rating == 2.0
        assert employee.rating_count == 1


def test_feedback_phone_must_match(client, completed) -> None:
    response = client.post(f"/appointments/{completed}/feedback", json={"phone": "9812345678", "rating": 4})

    assert response.status_code == 400
    assert response.json["errors"][0]["field"] == "phone"


def test_feedback_only_for_completed_appointments(client, catalog, booking_payload) -> None:
    created = client.post("/appointments", json=booking_payload())

    response = client.post(
        f"/appointments/{created.json['appointment']['id']}/feedback",
        json={"phone": "9876543210", "rating": 4},
    )

    assert response.status_code == 400
    assert response.json["error"] == "feedback_not_allowed"


@pytest.mark.parametrize("rating", [0, 6, "five", None])
def test_feedback_rating_range(client, completed, rating) -> None:
    response = client.post(f"/appointments/{completed}/feedback", json={"phone": "9876543210", "rating": rating})

    assert response.status_code == 400
    assert response.json["errors"][0]["field"] == "rating"


def test_feedback_text_limit(client, completed) -> None:
    response = client.post(
        f"/appointments/{completed}/feedback",
        json={"phone": "9876543210", "rating": 3, "feedback": "x" * 501},
    )

    assert response.status_code == 400


def test_feedback_missing_appointment(client) -> None:
    response = client.post("/appointments/999/feedback", json={"phone": "9876543210", "rating": 4})

    assert response.status_code == 404


def test_feedback_list_requires_token_and_reports_average(client, completed, admin_headers) -> None:
    client.post(f"/appointments/{completed}/feedback", json={"phone": "9876543210", "rating": 4})

    assert client.get("/feedback").status_code == 401
    response = client.get("/feedback", headers=admin_headers)

    assert response.status_code == 200
    assert response.json["average_rating"] == 4.0
    assert response.json["feedback"][0]["services"] == ["Hair Cut", "Beard Trim"]


def test_feedback_link(client, completed, admin_headers) -> None:
    response = client.get(f"/appointments/{completed}/feedback-link", headers=admin_headers)

    assert response.status_code == 200
    assert response.json["feedback_url"] == (
        f"http://localhost:3000/feedback?appointment={completed}&phone=9876543210"
    )


def test_notifier_reports_disabled_and_unconfigured(app) -> None:
    with app.app_context():
        appointment = Appointment(appointment_id=7, customer_name="Ravi", customer_phone="9876543210")

        disabled = FeedbackNotifier("http://salon.test/", enabled=False)
        assert disabled.send_sms(appointment)["success"] is False

        unconfigured = FeedbackNotifier("http://salon.test", enabled=True)
        assert unconfigured.send_sms(appointment)["message"] == "SMS service not configured"

        configured = FeedbackNotifier(
            "http://salon.test/", enabled=True, account_sid="AC1", auth_token="tok", from_number="+10000000000"
        )
        result = configured.send_sms(appointment)
        assert result["success"] is True
        assert result["mock_data"]["url"] == "http://salon.test/feedback?appointment=7&phone=9876543210"
        assert configured.send_whatsapp(appointment)["success"] is True


def test_notifier_sends_over_configured_channel(app) -> None:
    with app.app_context():
        appointment = Appointment(appointment_id=7, customer_name="Ravi", customer_phone="9876543210")

        whatsapp = FeedbackNotifier("http://salon.test", enabled=True, channel="whatsapp")
        assert whatsapp.send(appointment)["message"] == "Feedback link sent via WhatsApp"

        sms = FeedbackNotifier("http://salon.test", enabled=True)
        assert sms.send(appointment)["message"] == "SMS service not configured"


def test_notifier_rejects_unknown_channel() -> None:
    with pytest.raises(ValueError):
        FeedbackNotifier("http://salon.test", channel="pigeon")


def test_feedback_channel_is_read_from_config() -> None:
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:", "FEEDBACK_CHANNEL": "whatsapp"})

    assert app.extensions["booking_engine"].notifier.channel == "whatsapp"
    assert create_app(TestingConfig).extensions["booking_engine"].notifier.channel == "sms"


def test_completion_sends_feedback_link_over_whatsapp(
    client, catalog, booking_payload, admin_headers, app
) -> None:
    app.extensions["booking_engine"].notifier = FeedbackNotifier(
        "http://salon.test", enabled=True, channel="whatsapp"
    )
    created = client.post("/appointments", json=booking_payload())

    with patch.object(FeedbackNotifier, "send_whatsapp") as send_whatsapp, \
            patch.object(FeedbackNotifier, "send_sms") as send_sms:
        client.put(
            f"/appointments/{created.json['appointment']['id']}/status",
            json={"status": "completed"},
            headers=admin_headers,
        )

    assert send_whatsapp.call_count == 1
    assert send_sms.call_count == 0

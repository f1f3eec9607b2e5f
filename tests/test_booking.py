"""Tests for booking, the fifth-visit discount and slot availability."""
from __future__ import annotations

from datetime import timedelta

import pytest

from salonbook.booking import (LOYALTY_REASON, find_conflicting,
                               is_slot_available, loyalty_discount,
                               loyalty_points_for, loyalty_visit_due)
from salonbook.catalog import CatalogEntry
from salonbook.extensions import db
from salonbook.models import (Appointment, AppointmentService, Customer, Employee,
                              utc_today)

HAIR_CUT = CatalogEntry("Hair Cut", 15000, 30)
BEARD_TRIM = CatalogEntry("Beard Trim", 8000, 20)


@pytest.mark.parametrize("visits", [4, 9, 14, 99])
def test_loyalty_visit_due_before_every_fifth_visit(visits: int) -> None:
    assert loyalty_visit_due(visits) is True


@pytest.mark.parametrize("visits", [0, 1, 3, 5, 8, 10])
def test_loyalty_visit_not_due(visits: int) -> None:
    assert loyalty_visit_due(visits) is False


def test_loyalty_discount_is_cheapest_line() -> None:
    discount = loyalty_discount(4, [HAIR_CUT, BEARD_TRIM])

    assert discount.applied
    assert discount.type == "loyalty"
    assert discount.amount_paise == 8000
    assert discount.reason == LOYALTY_REASON


def test_loyalty_discount_not_given_to_new_customer() -> None:
    discount = loyalty_discount(0, [HAIR_CUT, BEARD_TRIM])

    assert not discount.applied
    assert discount.amount_paise == 0


def test_loyalty_points_are_one_per_ten_rupees() -> None:
    assert loyalty_points_for(23000) == 23
    assert loyalty_points_for(999) == 0
    assert loyalty_points_for(15000) == 15


def test_book_new_customer_pays_full_price(client, catalog, booking_payload, app) -> None:
    response = client.post("/appointments", json=booking_payload())

    assert response.status_code == 201
    data = response.json
    assert data["discount_applied"] is False
    appointment = data["appointment"]
    assert appointment["status"] == "pending"
    assert appointment["discount"]["amount_paise"] == 0
    assert appointment["total_amount_paise"] == 23000
    assert appointment["total_duration_minutes"] == 50
    assert [line["name"] for line in appointment["services"]] == ["Hair Cut", "Beard Trim"]

    with app.app_context():
        customer = Customer.query.filter_by(phone="9876543210").one()
        assert customer.total_visits == 0
        assert customer.name == "Ravi Kumar"


def test_book_fifth_visit_gets_cheapest_service_free(client, catalog, booking_payload, app) -> None:
    with app.app_context():
        db.session.add(Customer(name="Ravi Kumar", phone="9876543210", total_visits=4))
        db.session.commit()

    response = client.post("/appointments", json=booking_payload())

    assert response.status_code == 201
    data = response.json
    assert data["discount_applied"] is True
    appointment = data["appointment"]
    assert appointment["discount"]["type"] == "loyalty"
    assert appointment["discount"]["amount_paise"] == 8000
    assert appointment["total_amount_paise"] == 15000
    assert appointment["subtotal_paise"] == 23000


def test_book_sixth_visit_has_no_discount(client, catalog, booking_payload, app) -> None:
    with app.app_context():
        db.session.add(Customer(name="Ravi Kumar", phone="9876543210", total_visits=5))
        db.session.commit()

    response = client.post("/appointments", json=booking_payload())

    assert response.status_code == 201
    assert response.json["discount_applied"] is False
    assert response.json["appointment"]["total_amount_paise"] == 23000


def test_invalid_service_creates_no_records(client, catalog, booking_payload, app) -> None:
    response = client.post("/appointments", json=booking_payload(services=("Hair Cut", "Moon Walk")))

    assert response.status_code == 400
    assert response.json["error"] == "invalid_service"
    assert "Moon Walk" in response.json["message"]

    with app.app_context():
        assert Customer.query.count() == 0
        assert Appointment.query.count() == 0
        assert AppointmentService.query.count() == 0


def test_slot_conflict_then_rebook_after_cancel(client, catalog, booking_payload, employee_id, admin_headers) -> None:
    first = client.post("/appointments", json=booking_payload(employee_id=employee_id))
    assert first.status_code == 201

    second_payload = booking_payload(phone="9812345678", name="Anil", employee_id=employee_id)
    conflict = client.post("/appointments", json=second_payload)
    assert conflict.status_code == 409
    assert conflict.json["error"] == "slot_conflict"

    cancelled = client.put(
        f"/appointments/{first.json['appointment']['id']}/status",
        json={"status": "cancelled"},
        headers=admin_headers,
    )
    assert cancelled.status_code == 200

    retry = client.post("/appointments", json=second_payload)
    assert retry.status_code == 201


def test_single_digit_hour_matches_padded_slot(client, catalog, booking_payload, employee_id, app) -> None:
    first = client.post("/appointments", json=booking_payload(time="09:00", employee_id=employee_id))
    assert first.status_code == 201

    second = client.post(
        "/appointments",
        json=booking_payload(phone="9876500000", name="Anil", time="9:00", employee_id=employee_id),
    )

    assert second.status_code == 409
    assert second.json["error"] == "slot_conflict"
    with app.app_context():
        assert [a.appointment_time for a in Appointment.query.all()] == ["09:00"]


def test_single_digit_hour_is_stored_padded(client, catalog, booking_payload, admin_headers) -> None:
    created = client.post("/appointments", json=booking_payload(time="9:30"))
    assert created.json["appointment"]["appointment_time"] == "09:30"

    moved = client.put(
        f"/appointments/{created.json['appointment']['id']}",
        json={"appointment_time": "8:15"},
        headers=admin_headers,
    )

    assert moved.status_code == 200
    assert moved.json["appointment"]["appointment_time"] == "08:15"


def test_slot_conflict_creates_no_customer(client, catalog, booking_payload, employee_id, app) -> None:
    client.post("/appointments", json=booking_payload(employee_id=employee_id))

    response = client.post(
        "/appointments",
        json=booking_payload(phone="9812345678", name="Anil", employee_id=employee_id),
    )

    assert response.status_code == 409
    with app.app_context():
        assert Customer.query.filter_by(phone="9812345678").first() is None
        assert Appointment.query.count() == 1


def test_same_time_different_employee_is_free(client, catalog, booking_payload, employee_id, app) -> None:
    with app.app_context():
        other = Employee(name="Mahesh", phone="9000000001", role="Hair Stylist")
        db.session.add(other)
        db.session.commit()
        other_id = other.employee_id

    first = client.post("/appointments", json=booking_payload(employee_id=employee_id))
    second = client.post(
        "/appointments",
        json=booking_payload(phone="9812345678", name="Anil", employee_id=other_id),
    )

    assert first.status_code == 201
    assert second.status_code == 201


def test_booking_without_employee_conflicts_with_any_active_booking(
    client, catalog, booking_payload, employee_id
) -> None:
    client.post("/appointments", json=booking_payload(employee_id=employee_id))

    response = client.post("/appointments", json=booking_payload(phone="9812345678", name="Anil"))

    assert response.status_code == 409


def test_booking_unknown_employee_returns_404(client, catalog, booking_payload) -> None:
    response = client.post("/appointments", json=booking_payload(employee_id=999))

    assert response.status_code == 404
    assert response.json["error"] == "not_found"


def test_slot_check_respects_exclusion_and_status(app, catalog, employee_id) -> None:
    slot_date = utc_today() + timedelta(days=7)
    with app.app_context():
        customer = Customer(name="Ravi", phone="9876543210")
        db.session.add(customer)
        db.session.flush()
        booked = Appointment(
            customer_id=customer.customer_id,
            customer_name="Ravi",
            customer_phone="9876543210",
            employee_id=employee_id,
            appointment_date=slot_date,
            appointment_time="11:30",
            status="confirmed",
        )
        db.session.add(booked)
        db.session.commit()

        assert not is_slot_available(slot_date, "11:30", employee_id)
        assert find_conflicting(slot_date, "11:30").appointment_id == booked.appointment_id
        assert is_slot_available(slot_date, "11:30", employee_id, exclude_id=booked.appointment_id)
        assert is_slot_available(slot_date, "12:00", employee_id)
        assert is_slot_available(slot_date + timedelta(days=1), "11:30", employee_id)

        booked.status = "no-show"
        db.session.commit()
        assert is_slot_available(slot_date, "11:30", employee_id)


@pytest.mark.parametrize(
    "override, field",
    [
        ({"customer_info": {"name": "Ravi", "phone": "12345"}}, "customer_info.phone"),
        ({"customer_info": {"name": "", "phone": "9876543210"}}, "customer_info.name"),
        ({"services": []}, "services"),
        ({"appointment_time": "25:00"}, "appointment_time"),
        ({"appointment_date": "not-a-date"}, "appointment_date"),
        ({"employee_id": "abc"}, "employee_id"),
    ],
)
def test_booking_validation_errors(client, catalog, booking_payload, override, field) -> None:
    payload = {**booking_payload(), **override}

    response = client.post("/appointments", json=payload)

    assert response.status_code == 400
    assert response.json["error"] == "validation_error"
    assert field in [error["field"] for error in response.json["errors"]]


def test_booking_in_the_past_is_rejected(client, catalog, booking_payload) -> None:
    payload = booking_payload()
    payload["appointment_date"] = (utc_today() - timedelta(days=1)).isoformat()

    response = client.post("/appointments", json=payload)

    assert response.status_code == 400
    assert response.json["errors"][0]["message"] == "Appointment date cannot be in the past"


def test_booking_accepts_string_notes(client, catalog, booking_payload) -> None:
    payload = booking_payload()
    payload["notes"] = "Please use scissors only"

    response = client.post("/appointments", json=payload)

    assert response.status_code == 201
    assert response.json["appointment"]["notes"]["customer_notes"] == "Please use scissors only"

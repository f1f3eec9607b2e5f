"""Tests for the customer endpoints."""
from __future__ import annotations

from salonbook.extensions import db
from salonbook.models import Customer


def _create(client, headers, **overrides):
    payload = {"name": "Meera Nair", "phone": "9988776655", "email": "Meera@Example.com", **overrides}
    return client.post("/customers", json=payload, headers=headers)


def test_create_customer(client, admin_headers) -> None:
    response = _create(
        client,
        admin_headers,
        preferences={"favorite_services": ["Hair Cut", " "]},
    )

    assert response.status_code == 201
    customer = response.json["customer"]
    assert customer["email"] == "meera@example.com"
    assert customer["total_visits"] == 0
    assert customer["preferences"]["favorite_services"] == ["Hair Cut"]


def test_create_customer_requires_admin(client) -> None:
    assert _create(client, {}).status_code == 401


def test_duplicate_phone_is_rejected(client, admin_headers) -> None:
    _create(client, admin_headers)

    response = _create(client, admin_headers, name="Someone Else")

    assert response.status_code == 400
    assert response.json["error"] == "conflict"


def test_invalid_phone_is_rejected(client, admin_headers) -> None:
    response = _create(client, admin_headers, phone="12345")

    assert response.status_code == 400
    assert response.json["errors"][0]["field"] == "phone"


def test_list_search_and_sort(client, admin_headers) -> None:
    _create(client, admin_headers)
    _create(client, admin_headers, name="Arjun Rao", phone="9090909090", email=None)

    search = client.get("/customers?search=arjun", headers=admin_headers)
    by_name = client.get("/customers?sort_by=name&sort_order=asc", headers=admin_headers)

    assert search.json["pagination"]["total"] == 1
    assert search.json["customers"][0]["name"] == "Arjun Rao"
    assert [row["name"] for row in by_name.json["customers"]] == ["Arjun Rao", "Meera Nair"]
    assert client.get("/customers?sort_by=phone", headers=admin_headers).status_code == 400
    assert client.get("/customers").status_code == 401


def test_update_customer(client, admin_headers) -> None:
    created = _create(client, admin_headers)
    customer_id = created.json["customer"]["id"]
    _create(client, admin_headers, name="Arjun Rao", phone="9090909090")

    clash = client.put(f"/customers/{customer_id}", json={"phone": "9090909090"}, headers=admin_headers)
    renamed = client.put(f"/customers/{customer_id}", json={"name": "Meera N"}, headers=admin_headers)

    assert clash.status_code == 400
    assert renamed.status_code == 200
    assert renamed.json["customer"]["name"] == "Meera N"
    assert renamed.json["customer"]["phone"] == "9988776655"


def test_get_customer_with_recent_appointments(client, catalog, booking_payload, admin_headers) -> None:
    booked = client.post("/appointments", json=booking_payload())
    customer_id = booked.json["appointment"]["customer_id"]

    response = client.get(f"/customers/{customer_id}", headers=admin_headers)

    assert response.status_code == 200
    assert response.json["customer"]["phone"] == "9876543210"
    assert len(response.json["recent_appointments"]) == 1
    assert client.get("/customers/999", headers=admin_headers).status_code == 404


def test_delete_refused_with_upcoming_appointment(client, catalog, booking_payload, admin_headers, app) -> None:
    booked = client.post("/appointments", json=booking_payload())
    customer_id = booked.json["appointment"]["customer_id"]

    refused = client.delete(f"/customers/{customer_id}", headers=admin_headers)
    assert refused.status_code == 400
    assert refused.json["error"] == "has_pending_appointments"

    client.put(
        f"/appointments/{booked.json['appointment']['id']}/status",
        json={"status": "cancelled"},
        headers=admin_headers,
    )
    deleted = client.delete(f"/customers/{customer_id}", headers=admin_headers)

    assert deleted.status_code == 200
    with app.app_context():
        customer = db.session.get(Customer, customer_id)
        assert customer is not None
        assert customer.is_active is False


def test_customer_stats(client, catalog, booking_payload, admin_headers, app) -> None:
    with app.app_context():
        db.session.add(Customer(name="Ravi Kumar", phone="9876543210", total_visits=3))
        db.session.commit()
    booked = client.post("/appointments", json=booking_payload())
    appointment_id = booked.json["appointment"]["id"]
    customer_id = booked.json["appointment"]["customer_id"]
    client.put(f"/appointments/{appointment_id}/status", json={"status": "completed"}, headers=admin_headers)

    response = client.get(f"/customers/{customer_id}/stats", headers=admin_headers)

    assert response.status_code == 200
    stats = response.json
    assert stats["customer"]["total_visits"] == 4
    assert stats["customer"]["is_eligible_for_free_service"] is True
    assert stats["appointment_stats"] == [{"status": "completed", "count": 1, "total_amount_paise": 23000}]
    assert {row["service_name"] for row in stats["service_stats"]} == {"Hair Cut", "Beard Trim"}

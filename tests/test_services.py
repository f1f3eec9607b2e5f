"""Tests for the service catalog admin endpoints."""
from __future__ import annotations

import pytest


def _create(client, headers, **overrides):
    payload = {
        "name": "Head Massage",
        "description": "Oil head massage",
        "price_paise": 20000,
        "duration_minutes": 20,
        "category": "Hair Care",
        "tags": ["Relax", " "],
        **overrides,
    }
    return client.post("/services", json=payload, headers=headers)


def test_create_service(client, admin_headers) -> None:
    response = _create(client, admin_headers)

    assert response.status_code == 201
    service = response.json["service"]
    assert service["price_paise"] == 20000
    assert service["tags"] == ["relax"]
    assert service["is_active"] is True


def test_create_service_requires_admin(client) -> None:
    assert _create(client, {}).status_code == 401


def test_duplicate_name_is_case_insensitive(client, catalog, admin_headers) -> None:
    response = _create(client, admin_headers, name="hair cut")

    assert response.status_code == 400
    assert response.json["error"] == "conflict"


@pytest.mark.parametrize(
    "field, value",
    [
        ("price_paise", -100),
        ("duration_minutes", 0),
        ("duration_minutes", 481),
        ("category", "Nails"),
        ("name", ""),
    ],
)
def test_create_service_validation(client, admin_headers, field, value) -> None:
    response = _create(client, admin_headers, **{field: value})

    assert response.status_code == 400
    assert response.json["errors"][0]["field"] == field


def test_list_and_get_services(client, catalog) -> None:
    everything = client.get("/services")
    beard = client.get("/services", query_string={"category": "Beard Care"})
    active = client.get("/services?active=true")

    assert len(everything.json["services"]) == 5
    assert {s["name"] for s in beard.json["services"]} == {"Beard Trim", "Shave"}
    assert "Old Perm" not in {s["name"] for s in active.json["services"]}
    assert client.get("/services?category=Nails").status_code == 400

    service_id = everything.json["services"][0]["id"]
    assert client.get(f"/services/{service_id}").status_code == 200
    assert client.get("/services/999").status_code == 404


def test_update_service_price(client, catalog, admin_headers) -> None:
    services = client.get("/services").json["services"]
    haircut = next(s for s in services if s["name"] == "Hair Cut")
    shave = next(s for s in services if s["name"] == "Shave")

    updated = client.put(f"/services/{haircut['id']}", json={"price_paise": 18000}, headers=admin_headers)
    clash = client.put(f"/services/{shave['id']}", json={"name": "HAIR CUT"}, headers=admin_headers)

    assert updated.status_code == 200
    assert updated.json["service"]["price_paise"] == 18000
    assert clash.status_code == 400


def test_toggle_status_hides_service_from_pricing(client, catalog, admin_headers) -> None:
    services = client.get("/services").json["services"]
    facial = next(s for s in services if s["name"] == "Facial")

    toggled = client.patch(f"/services/{facial['id']}/toggle-status", headers=admin_headers)
    pricing = client.get("/services/pricing")

    assert toggled.status_code == 200
    assert toggled.json["message"] == "Service deactivated successfully"
    assert "Facial" not in pricing.json["services"]
    assert "Old Perm" not in pricing.json["services"]
    assert pricing.json["services"]["Hair Cut"]["price_paise"] == 15000


def test_deleted_service_keeps_booked_totals(client, catalog, booking_payload, admin_headers) -> None:
    booked = client.post("/appointments", json=booking_payload())
    services = client.get("/services").json["services"]
    beard = next(s for s in services if s["name"] == "Beard Trim")

    deleted = client.delete(f"/services/{beard['id']}", headers=admin_headers)
    appointment = client.get(f"/appointments/{booked.json['appointment']['id']}")

    assert deleted.status_code == 200
    assert appointment.json["appointment"]["total_amount_paise"] == 23000
    assert [line["name"] for line in appointment.json["appointment"]["services"]] == ["Hair Cut", "Beard Trim"]

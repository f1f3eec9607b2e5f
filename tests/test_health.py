"""Smoke tests for the health endpoints and app factory settings."""
from __future__ import annotations

from unittest.mock import patch

from sqlalchemy import text

from salonbook import create_app


def test_health_endpoint(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json == {"status": "ok"}


def test_database_health_ok(client) -> None:
    response = client.get("/db-health")

    assert response.status_code == 200
    assert response.json == {"database": "ok"}


def test_database_health_reports_outage(client) -> None:
    with patch("salonbook.routes.text", return_value=text("SELECT * FROM missing_table")):
        response = client.get("/db-health")

    assert response.status_code == 500
    assert response.json == {"database": "unavailable"}


def test_mapping_config_overrides_defaults() -> None:
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SALON_NAME": "Test Salon",
        "SLOT_INTERVAL_MINUTES": 15,
    })

    assert app.config["SALON_NAME"] == "Test Salon"
    assert app.config["SLOT_INTERVAL_MINUTES"] == 15
    assert app.config["SALON_OPEN_HOUR"] == 9
    assert "booking_engine" in app.extensions


def test_unknown_route_returns_json_404(client) -> None:
    response = client.get("/does-not-exist")

    assert response.status_code == 404
    assert response.json["error"] == "not_found"

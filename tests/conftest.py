"""Shared pytest fixtures: app on in-memory SQLite, seeded catalog, admin token."""
from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

# Ensure the project root is available on sys.path so tests can import the salonbook package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app
from salonbook.auth import build_token
from salonbook.config import TestingConfig
from salonbook.extensions import db
from salonbook.models import WEEKDAYS, Admin, Employee, Service, utc_today


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def catalog(app) -> None:
    with app.app_context():
        db.session.add_all([
            Service(name="Hair Cut", price_paise=15000, duration_minutes=30, category="Hair Care"),
            Service(name="Beard Trim", price_paise=8000, duration_minutes=20, category="Beard Care"),
            Service(name="Shave", price_paise=10000, duration_minutes=25, category="Beard Care"),
            Service(name="Facial", price_paise=30000, duration_minutes=60, category="Skin Care"),
            Service(name="Old Perm", price_paise=40000, duration_minutes=90, category="Styling", is_active=False),
        ])
        db.session.commit()


@pytest.fixture
def admin_headers(app) -> dict[str, str]:
    with app.app_context():
        admin = Admin(
            username="owner",
            name="Salon Owner",
            role="owner",
            password_hash=generate_password_hash("secret123"),
        )
        db.session.add(admin)
        db.session.commit()
        token = build_token(admin)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def employee_id(app) -> int:
    with app.app_context():
        employee = Employee(
            name="Suresh",
            phone="9123456780",
            role="Senior Barber",
            specializations=["Hair Cut", "Beard Trim"],
            working_hours_start="09:00",
            working_hours_end="18:00",
            working_days=list(WEEKDAYS),
            commission_percentage=10.0,
        )
        db.session.add(employee)
        db.session.commit()
        return employee.employee_id


@pytest.fixture
def booking_date() -> str:
    return (utc_today() + timedelta(days=30)).isoformat()


@pytest.fixture
def booking_payload(booking_date):
    def make(
        phone: str = "9876543210",
        services: tuple[str, ...] = ("Hair Cut", "Beard Trim"),
        time: str = "10:00",
        employee_id: int | None = None,
        name: str = "Ravi Kumar",
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "customer_info": {"name": name, "phone": phone},
            "services": list(services),
            "appointment_date": booking_date,
            "appointment_time": time,
        }
        if employee_id is not None:
            payload["employee_id"] = employee_id
        return payload

    return make

"""Database models for the salon booking backend."""
from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import text

from .extensions import db

APPOINTMENT_STATUSES = ("pending", "confirmed", "in-progress", "completed", "cancelled", "no-show")
# Only these statuses hold a time slot
ACTIVE_STATUSES = ("pending", "confirmed", "in-progress")
TERMINAL_STATUSES = ("completed", "cancelled", "no-show")

DISCOUNT_TYPES = ("none", "loyalty", "promo")
BILL_DISCOUNT_TYPES = ("none", "loyalty", "promo", "manual")
PAYMENT_METHODS = ("cash", "card", "upi", "online")
PAYMENT_STATUSES = ("pending", "paid", "partial", "refunded")

EMPLOYEE_ROLES = ("Senior Barber", "Junior Barber", "Hair Stylist", "Trainee")
SERVICE_CATEGORIES = ("Hair Care", "Beard Care", "Skin Care", "Styling", "Complete Package")
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """The salon calendar day; bills, income rows and "today" views all use it."""
    return utc_now().date()


def to_rupees(paise: int | None) -> float:
    return (paise or 0) / 100.0


class Admin(db.Model):
    __tablename__ = "admins"

    admin_id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255))
    phone = db.Column(db.String(30))
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(
        db.Enum(
            "admin",
            "owner",
            "staff",
            name="admin_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="admin",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.admin_id,
            "username": self.username,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "is_active": bool(self.is_active),
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }


class Customer(db.Model):
    """Customer ledger keyed by phone number."""

    __tablename__ = "customers"

    customer_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(15), unique=True, nullable=False)
    email = db.Column(db.String(255))
    date_of_birth = db.Column(db.Date)
    address = db.Column(db.String(200))
    favorite_services = db.Column(db.JSON, nullable=True, default=list)
    preferred_employee_id = db.Column(db.Integer, db.ForeignKey("employees.employee_id"), nullable=True)
    total_visits = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    total_spent_paise = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    loyalty_points = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    last_visit = db.Column(db.DateTime)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    preferred_employee = db.relationship("Employee")

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.customer_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "total_visits": self.total_visits,
        }

    def to_dict(self) -> dict[str, object]:
        return {
            **self.to_dict_basic(),
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "address": self.address,
            "preferences": {
                "favorite_services": self.favorite_services or [],
                "preferred_employee_id": self.preferred_employee_id,
            },
            "total_spent_paise": self.total_spent_paise,
            "total_spent": to_rupees(self.total_spent_paise),
            "loyalty_points": self.loyalty_points,
            "last_visit": self.last_visit.isoformat() if self.last_visit else None,
            "is_active": bool(self.is_active),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Employee(db.Model):
    __tablename__ = "employees"

    employee_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(15), unique=True, nullable=False)
    email = db.Column(db.String(255))
    role = db.Column(
        db.Enum(
            *EMPLOYEE_ROLES,
            name="employee_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="Junior Barber",
    )
    specializations = db.Column(db.JSON, nullable=True, default=list)
    experience_years = db.Column(db.Integer)
    working_hours_start = db.Column(db.String(5), nullable=False, default="09:00")
    working_hours_end = db.Column(db.String(5), nullable=False, default="18:00")
    working_days = db.Column(db.JSON, nullable=True, default=list)
    salary_paise = db.Column(db.Integer)
    commission_percentage = db.Column(db.Float, nullable=False, default=10.0)
    join_date = db.Column(db.Date)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    completed_appointments = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    rating = db.Column(db.Float, nullable=False, default=0.0, server_default="0")
    rating_count = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.employee_id,
            "name": self.name,
            "role": self.role,
            "specializations": self.specializations or [],
        }

    def to_dict(self) -> dict[str, object]:
        return {
            **self.to_dict_basic(),
            "phone": self.phone,
            "email": self.email,
            "experience_years": self.experience_years,
            "working_hours": {
                "start": self.working_hours_start,
                "end": self.working_hours_end,
            },
            "working_days": self.working_days or [],
            "salary_paise": self.salary_paise,
            "commission_percentage": self.commission_percentage,
            "join_date": self.join_date.isoformat() if self.join_date else None,
            "is_active": bool(self.is_active),
            "performance": {
                "completed_appointments": self.completed_appointments,
                "rating": self.rating,
                "rating_count": self.rating_count,
            },
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Service(db.Model):
    """Service catalog entry; the single source of booking prices."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500))
    price_paise = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    category = db.Column(
        db.Enum(
            *SERVICE_CATEGORIES,
            name="service_category",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="Hair Care",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    tags = db.Column(db.JSON, nullable=True, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "name": self.name,
            "description": self.description,
            "price_paise": self.price_paise,
            "price": to_rupees(self.price_paise),
            "duration_minutes": self.duration_minutes,
            "category": self.category,
            "is_active": bool(self.is_active),
            "tags": self.tags or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Appointment(db.Model):
    """One booking; owns a priced snapshot of its services."""

    __tablename__ = "appointments"
    __table_args__ = (
        db.Index("ix_appointments_slot", "appointment_date", "appointment_time"),
        # Backstop for two concurrent bookings of the same employee slot
        db.Index(
            "uq_appointments_active_employee_slot",
            "appointment_date",
            "appointment_time",
            "employee_id",
            unique=True,
            sqlite_where=text(
                "status IN ('pending', 'confirmed', 'in-progress') AND employee_id IS NOT NULL"
            ),
            postgresql_where=text(
                "status IN ('pending', 'confirmed', 'in-progress') AND employee_id IS NOT NULL"
            ),
        ),
    )

    appointment_id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.customer_id"), nullable=False)
    customer_name = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(15), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.employee_id"), nullable=True)
    appointment_date = db.Column(db.Date, nullable=False)
    appointment_time = db.Column(db.String(5), nullable=False)
    status = db.Column(
        db.Enum(
            *APPOINTMENT_STATUSES,
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    total_amount_paise = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(
        db.Enum(
            *DISCOUNT_TYPES,
            name="discount_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="none",
        server_default="none",
    )
    discount_amount_paise = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    discount_reason = db.Column(db.String(255))
    customer_notes = db.Column(db.Text)
    employee_notes = db.Column(db.Text)
    admin_notes = db.Column(db.Text)
    reminder_sent = db.Column(db.Boolean, nullable=False, default=False)
    is_billed = db.Column(db.Boolean, nullable=False, default=False)
    rating = db.Column(db.Integer)  # 1-5 stars
    feedback = db.Column(db.String(500))
    feedback_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    customer = db.relationship("Customer")
    employee = db.relationship("Employee")
    services = db.relationship(
        "AppointmentService",
        back_populates="appointment",
        order_by="AppointmentService.position",
        cascade="all, delete-orphan",
    )

    @property
    def subtotal_paise(self) -> int:
        return sum(line.price_paise for line in self.services)

    @property
    def total_duration_minutes(self) -> int:
        return sum(line.duration_minutes for line in self.services)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.appointment_id,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict_basic() if self.customer else None,
            "customer_info": {
                "name": self.customer_name,
                "phone": self.customer_phone,
            },
            "services": [line.to_dict() for line in self.services],
            "employee_id": self.employee_id,
            "employee": self.employee.to_dict_basic() if self.employee else None,
            "appointment_date": self.appointment_date.isoformat() if self.appointment_date else None,
            "appointment_time": self.appointment_time,
            "status": self.status,
            "subtotal_paise": self.subtotal_paise,
            "total_amount_paise": self.total_amount_paise,
            "total_amount": to_rupees(self.total_amount_paise),
            "total_duration_minutes": self.total_duration_minutes,
            "discount": {
                "type": self.discount_type,
                "amount_paise": self.discount_amount_paise,
                "amount": to_rupees(self.discount_amount_paise),
                "reason": self.discount_reason,
            },
            "notes": {
                "customer_notes": self.customer_notes,
                "employee_notes": self.employee_notes,
                "admin_notes": self.admin_notes,
            },
            "reminder_sent": bool(self.reminder_sent),
            "is_billed": bool(self.is_billed),
            "rating": self.rating,
            "feedback": self.feedback,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class AppointmentService(db.Model):
    """Line item copied from the catalog at booking time."""

    __tablename__ = "appointment_services"

    line_id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(
        db.Integer, db.ForeignKey("appointments.appointment_id", ondelete="CASCADE"), nullable=False
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    service_name = db.Column(db.String(100), nullable=False)
    price_paise = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)

    appointment = db.relationship("Appointment", back_populates="services")

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.service_name,
            "price_paise": self.price_paise,
            "price": to_rupees(self.price_paise),
            "duration_minutes": self.duration_minutes,
        }


class Bill(db.Model):
    __tablename__ = "bills"

    bill_id = db.Column(db.Integer, primary_key=True)
    bill_number = db.Column(db.String(20), unique=True, nullable=False)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.customer_id"), nullable=False)
    customer_name = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(15), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.employee_id"), nullable=True)
    line_items = db.Column(db.JSON, nullable=False, default=list)
    subtotal_paise = db.Column(db.Integer, nullable=False)
    discount_type = db.Column(
        db.Enum(
            *BILL_DISCOUNT_TYPES,
            name="bill_discount_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="none",
    )
    discount_amount_paise = db.Column(db.Integer, nullable=False, default=0)
    discount_percentage = db.Column(db.Float, nullable=False, default=0.0)
    discount_reason = db.Column(db.String(255))
    tax_percentage = db.Column(db.Float, nullable=False, default=0.0)
    tax_amount_paise = db.Column(db.Integer, nullable=False, default=0)
    total_amount_paise = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(
        db.Enum(
            *PAYMENT_METHODS,
            name="payment_method",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    payment_status = db.Column(
        db.Enum(
            *PAYMENT_STATUSES,
            name="payment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="paid",
    )
    paid_amount_paise = db.Column(db.Integer, nullable=False, default=0)
    change_given_paise = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(300))
    # Stripe payment intent id for online payments
    gateway_payment_id = db.Column(db.String(255), nullable=True, unique=True)
    billing_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    appointment = db.relationship("Appointment")
    customer = db.relationship("Customer")
    employee = db.relationship("Employee")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.bill_id,
            "bill_number": self.bill_number,
            "appointment_id": self.appointment_id,
            "customer_id": self.customer_id,
            "customer_info": {
                "name": self.customer_name,
                "phone": self.customer_phone,
            },
            "employee": self.employee.to_dict_basic() if self.employee else None,
            "services": self.line_items or [],
            "subtotal_paise": self.subtotal_paise,
            "discount": {
                "type": self.discount_type,
                "amount_paise": self.discount_amount_paise,
                "percentage": self.discount_percentage,
                "reason": self.discount_reason,
            },
            "tax": {
                "percentage": self.tax_percentage,
                "amount_paise": self.tax_amount_paise,
            },
            "total_amount_paise": self.total_amount_paise,
            "total_amount": to_rupees(self.total_amount_paise),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "paid_amount_paise": self.paid_amount_paise,
            "change_given_paise": self.change_given_paise,
            "notes": self.notes,
            "gateway_payment_id": self.gateway_payment_id,
            "billing_date": self.billing_date.isoformat() if self.billing_date else None,
        }


class DailyIncome(db.Model):
    """Per-day revenue rollup maintained as bills are written."""

    __tablename__ = "daily_income"

    income_id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, unique=True, nullable=False)
    total_revenue_paise = db.Column(db.Integer, nullable=False, default=0)
    total_bills = db.Column(db.Integer, nullable=False, default=0)
    total_customers = db.Column(db.Integer, nullable=False, default=0)
    payment_breakdown = db.Column(db.JSON, nullable=False, default=dict)
    service_breakdown = db.Column(db.JSON, nullable=False, default=list)
    employee_performance = db.Column(db.JSON, nullable=False, default=list)
    expenses = db.Column(db.JSON, nullable=False, default=list)
    total_expenses_paise = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def net_profit_paise(self) -> int:
        return (self.total_revenue_paise or 0) - (self.total_expenses_paise or 0)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.income_id,
            "date": self.date.isoformat() if self.date else None,
            "total_revenue_paise": self.total_revenue_paise,
            "total_bills": self.total_bills,
            "total_customers": self.total_customers,
            "payment_breakdown": self.payment_breakdown or {},
            "service_breakdown": self.service_breakdown or [],
            "employee_performance": self.employee_performance or [],
            "expenses": self.expenses or [],
            "total_expenses_paise": self.total_expenses_paise,
            "net_profit_paise": self.net_profit_paise,
            "notes": self.notes,
        }

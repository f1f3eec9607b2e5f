"""Request payload validation.

Every parser collects field-level problems into a :class:`FieldErrors` and
raises a single :class:`~salonbook.errors.ValidationError` listing all of
them, so the client sees every bad field at once.
"""
from __future__ import annotations

import re
from datetime import date, datetime

from .booking import AppointmentChanges, BookingRequest
from .errors import ValidationError
from .models import (APPOINTMENT_STATUSES, BILL_DISCOUNT_TYPES, EMPLOYEE_ROLES,
                     PAYMENT_METHODS, SERVICE_CATEGORIES, WEEKDAYS,
                     utc_today)

PHONE_RE = re.compile(r"^[6-9]\d{9}$")
TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")

NOTE_FIELDS = ("customer_notes", "employee_notes", "admin_notes")
_MISSING = object()


class FieldErrors:
    def __init__(self) -> None:
        self._errors: list[dict[str, object]] = []

    def add(self, field: str, message: str, value: object = None) -> None:
        self._errors.append({"field": field, "message": message, "value": value})

    def __bool__(self) -> bool:
        return bool(self._errors)

    def raise_if_any(self) -> None:
        if self._errors:
            raise ValidationError("Validation errors", errors=list(self._errors))


def clean_str(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_date(value: object) -> date | None:
    """Accept ``YYYY-MM-DD`` or a full ISO-8601 timestamp."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _check_name(errors: FieldErrors, field: str, value: object, required: bool = True) -> str | None:
    name = clean_str(value)
    if not name:
        if required:
            errors.add(field, "Customer name is required", value)
        return None
    if len(name) > 100:
        errors.add(field, "Name cannot be more than 100 characters", value)
    return name


def _check_phone(errors: FieldErrors, field: str, value: object) -> str | None:
    phone = clean_str(value)
    if not PHONE_RE.match(phone):
        errors.add(field, "Please enter a valid Indian mobile number", value)
        return None
    return phone


def _check_email(errors: FieldErrors, field: str, value: object) -> str | None:
    email = clean_str(value).lower()
    if not email:
        return None
    if not EMAIL_RE.match(email):
        errors.add(field, "Please enter a valid email address", value)
    return email


def _check_services(errors: FieldErrors, value: object) -> list[str]:
    if not isinstance(value, list) or not value:
        errors.add("services", "At least one service is required", value)
        return []
    names = []
    for index, item in enumerate(value):
        name = clean_str(item)
        if not name:
            errors.add(f"services[{index}]", "Service name cannot be empty", item)
        else:
            names.append(name)
    return names


def _check_appointment_date(errors: FieldErrors, value: object) -> date | None:
    parsed = parse_date(value)
    if parsed is None:
        errors.add("appointment_date", "Valid appointment date is required", value)
        return None
    if parsed < utc_today():
        errors.add("appointment_date", "Appointment date cannot be in the past", value)
    return parsed


def _check_time(errors: FieldErrors, value: object) -> str | None:
    # Slot keys are compared as strings, so "9:00" must become "09:00"
    return _check_hhmm(errors, "appointment_time", value)


def _check_employee_id(errors: FieldErrors, value: object) -> int | None:
    if value in (None, ""):
        return None
    employee_id = parse_int(value)
    if employee_id is None or employee_id <= 0:
        errors.add("employee_id", "Invalid employee ID", value)
        return None
    return employee_id


def _check_notes(errors: FieldErrors, value: object) -> dict[str, str]:
    if value in (None, ""):
        return {}
    if isinstance(value, str):
        # A bare string is the customer's own note
        return {"customer_notes": value.strip()}
    if not isinstance(value, dict):
        errors.add("notes", "Notes must be an object", value)
        return {}
    notes = {}
    for key in NOTE_FIELDS:
        if key in value:
            notes[key] = clean_str(value[key])
    return notes


def parse_booking_request(payload: dict) -> BookingRequest:
    errors = FieldErrors()
    customer_info = payload.get("customer_info")
    if not isinstance(customer_info, dict):
        customer_info = {}

    name = _check_name(errors, "customer_info.name", customer_info.get("name"))
    phone = _check_phone(errors, "customer_info.phone", customer_info.get("phone"))
    email = _check_email(errors, "customer_info.email", customer_info.get("email"))
    services = _check_services(errors, payload.get("services"))
    appointment_date = _check_appointment_date(errors, payload.get("appointment_date"))
    appointment_time = _check_time(errors, payload.get("appointment_time"))
    employee_id = _check_employee_id(errors, payload.get("employee_id"))
    notes = _check_notes(errors, payload.get("notes"))

    errors.raise_if_any()
    return BookingRequest(
        name=name,
        phone=phone,
        email=email,
        services=services,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        employee_id=employee_id,
        notes=notes,
    )


def parse_appointment_changes(payload: dict) -> AppointmentChanges:
    errors = FieldErrors()
    changes = AppointmentChanges()

    customer_info = payload.get("customer_info")
    if customer_info is not None:
        if not isinstance(customer_info, dict):
            errors.add("customer_info", "Customer info must be an object", customer_info)
        else:
            snapshot = {}
            if "name" in customer_info:
                name = _check_name(errors, "customer_info.name", customer_info["name"])
                if name:
                    snapshot["name"] = name
            if "phone" in customer_info:
                phone = _check_phone(errors, "customer_info.phone", customer_info["phone"])
                if phone:
                    snapshot["phone"] = phone
            changes.customer_info = snapshot

    if "services" in payload:
        changes.services = _check_services(errors, payload["services"])
    if "appointment_date" in payload:
        changes.appointment_date = _check_appointment_date(errors, payload["appointment_date"])
    if "appointment_time" in payload:
        changes.appointment_time = _check_time(errors, payload["appointment_time"])
    if "employee_id" in payload:
        changes.employee_id = _check_employee_id(errors, payload["employee_id"])
        changes.employee_changed = True
    if "status" in payload:
        status = payload["status"]
        if status not in APPOINTMENT_STATUSES:
            errors.add("status", "Invalid status", status)
        else:
            changes.status = status
    if "notes" in payload:
        changes.notes = _check_notes(errors, payload["notes"])
    if "rating" in payload:
        changes.rating = check_rating(errors, payload["rating"])
    if "feedback" in payload:
        changes.feedback = check_feedback(errors, payload["feedback"])

    errors.raise_if_any()
    return changes


def check_rating(errors: FieldErrors, value: object) -> int | None:
    rating = parse_int(value)
    if rating is None or not 1 <= rating <= 5:
        errors.add("rating", "Rating must be between 1 and 5", value)
        return None
    return rating


def check_feedback(errors: FieldErrors, value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        errors.add("feedback", "Feedback must be text", value)
        return None
    feedback = value.strip()
    if len(feedback) > 500:
        errors.add("feedback", "Feedback cannot be more than 500 characters", value)
    return feedback or None


def parse_feedback(payload: dict) -> tuple[str, int, str | None]:
    errors = FieldErrors()
    phone = _check_phone(errors, "phone", payload.get("phone"))
    rating = check_rating(errors, payload.get("rating"))
    feedback = check_feedback(errors, payload.get("feedback"))
    errors.raise_if_any()
    return phone, rating, feedback


def parse_customer(payload: dict, partial: bool = False) -> dict[str, object]:
    errors = FieldErrors()
    cleaned: dict[str, object] = {}

    if not partial or "name" in payload:
        cleaned["name"] = _check_name(errors, "name", payload.get("name"))
    if not partial or "phone" in payload:
        cleaned["phone"] = _check_phone(errors, "phone", payload.get("phone"))
    if "email" in payload:
        cleaned["email"] = _check_email(errors, "email", payload.get("email"))
    if payload.get("date_of_birth"):
        dob = parse_date(payload["date_of_birth"])
        if dob is None:
            errors.add("date_of_birth", "Please enter a valid date", payload["date_of_birth"])
        cleaned["date_of_birth"] = dob
    if "address" in payload:
        address = clean_str(payload.get("address"))
        if len(address) > 200:
            errors.add("address", "Address cannot be more than 200 characters", payload["address"])
        cleaned["address"] = address or None
    preferences = payload.get("preferences")
    if isinstance(preferences, dict):
        if "favorite_services" in preferences:
            favorites = preferences["favorite_services"]
            if not isinstance(favorites, list):
                errors.add("preferences.favorite_services", "Favorite services must be a list", favorites)
            else:
                cleaned["favorite_services"] = [clean_str(name) for name in favorites if clean_str(name)]
        if "preferred_employee_id" in preferences:
            cleaned["preferred_employee_id"] = _check_employee_id(
                errors, preferences["preferred_employee_id"]
            )

    errors.raise_if_any()
    return cleaned


def _check_hhmm(errors: FieldErrors, field: str, value: object) -> str | None:
    time_str = clean_str(value)
    if not TIME_RE.match(time_str):
        errors.add(field, "Please enter time in HH:MM format", value)
        return None
    # Stored zero-padded so string comparisons order correctly
    hours, minutes = time_str.split(":")
    return f"{int(hours):02d}:{minutes}"


def parse_employee(payload: dict, partial: bool = False) -> dict[str, object]:
    errors = FieldErrors()
    cleaned: dict[str, object] = {}

    if not partial or "name" in payload:
        name = clean_str(payload.get("name"))
        if not name:
            errors.add("name", "Employee name is required", payload.get("name"))
        elif len(name) > 100:
            errors.add("name", "Name cannot be more than 100 characters", name)
        cleaned["name"] = name
    if not partial or "phone" in payload:
        cleaned["phone"] = _check_phone(errors, "phone", payload.get("phone"))
    if "email" in payload:
        cleaned["email"] = _check_email(errors, "email", payload.get("email"))
    if "role" in payload or not partial:
        role = payload.get("role") or "Junior Barber"
        if role not in EMPLOYEE_ROLES:
            errors.add("role", "Invalid role", role)
        cleaned["role"] = role
    if "specializations" in payload:
        specializations = payload["specializations"]
        if not isinstance(specializations, list):
            errors.add("specializations", "Specializations must be a list", specializations)
        else:
            cleaned["specializations"] = [clean_str(s) for s in specializations if clean_str(s)]
    working_hours = payload.get("working_hours")
    if isinstance(working_hours, dict):
        if "start" in working_hours:
            cleaned["working_hours_start"] = _check_hhmm(errors, "working_hours.start", working_hours["start"])
        if "end" in working_hours:
            cleaned["working_hours_end"] = _check_hhmm(errors, "working_hours.end", working_hours["end"])
    if "working_days" in payload:
        days = payload["working_days"]
        if not isinstance(days, list) or any(day not in WEEKDAYS for day in days):
            errors.add("working_days", "Working days must be weekday names", days)
        else:
            cleaned["working_days"] = list(days)
    if "experience_years" in payload:
        years = parse_int(payload["experience_years"])
        if years is None or not 0 <= years <= 50:
            errors.add("experience_years", "Experience must be between 0 and 50 years", payload["experience_years"])
        cleaned["experience_years"] = years
    if "salary_paise" in payload:
        salary = parse_int(payload["salary_paise"])
        if salary is None or salary < 0:
            errors.add("salary_paise", "Salary must be a positive number", payload["salary_paise"])
        cleaned["salary_paise"] = salary
    if "commission_percentage" in payload:
        try:
            commission = float(payload["commission_percentage"])
        except (TypeError, ValueError):
            commission = -1.0
        if not 0 <= commission <= 100:
            errors.add("commission_percentage", "Commission must be between 0 and 100", payload["commission_percentage"])
        cleaned["commission_percentage"] = commission
    if payload.get("join_date"):
        join_date = parse_date(payload["join_date"])
        if join_date is None:
            errors.add("join_date", "Please enter a valid date", payload["join_date"])
        cleaned["join_date"] = join_date

    errors.raise_if_any()
    return cleaned


def parse_service(payload: dict, partial: bool = False) -> dict[str, object]:
    errors = FieldErrors()
    cleaned: dict[str, object] = {}

    if not partial or "name" in payload:
        name = clean_str(payload.get("name"))
        if not name:
            errors.add("name", "Service name is required", payload.get("name"))
        elif len(name) > 100:
            errors.add("name", "Service name cannot exceed 100 characters", name)
        cleaned["name"] = name
    if not partial or "description" in payload:
        description = clean_str(payload.get("description"))
        if len(description) > 500:
            errors.add("description", "Description cannot exceed 500 characters", description)
        cleaned["description"] = description or None
    if not partial or "price_paise" in payload:
        price = parse_int(payload.get("price_paise"))
        if price is None or price < 0:
            errors.add("price_paise", "Price must be a positive number", payload.get("price_paise"))
        cleaned["price_paise"] = price
    if not partial or "duration_minutes" in payload:
        duration = parse_int(payload.get("duration_minutes"))
        if duration is None or not 1 <= duration <= 480:
            errors.add("duration_minutes", "Duration must be between 1 and 480 minutes", payload.get("duration_minutes"))
        cleaned["duration_minutes"] = duration
    if not partial or "category" in payload:
        category = payload.get("category") or "Hair Care"
        if category not in SERVICE_CATEGORIES:
            errors.add("category", "Invalid category", category)
        cleaned["category"] = category
    if "tags" in payload:
        tags = payload["tags"]
        if not isinstance(tags, list):
            errors.add("tags", "Tags must be a list", tags)
        else:
            cleaned["tags"] = [clean_str(tag).lower() for tag in tags if clean_str(tag)]

    errors.raise_if_any()
    return cleaned


def _parse_percentage(errors: FieldErrors, field: str, value: object) -> float:
    if value in (None, ""):
        return 0.0
    try:
        percentage = float(value)
    except (TypeError, ValueError):
        percentage = -1.0
    if not 0 <= percentage <= 100:
        errors.add(field, "Percentage must be between 0 and 100", value)
        return 0.0
    return percentage


def parse_bill(payload: dict) -> dict[str, object]:
    errors = FieldErrors()
    method = payload.get("payment_method")
    if method not in PAYMENT_METHODS:
        errors.add("payment_method", "Invalid payment method", method)
    paid = parse_int(payload.get("paid_amount_paise"))
    if paid is None or paid < 0:
        errors.add("paid_amount_paise", "Paid amount must be a positive number", payload.get("paid_amount_paise"))

    discount = payload.get("discount") or {}
    if not isinstance(discount, dict):
        errors.add("discount", "Discount must be an object", discount)
        discount = {}
    discount_type = discount.get("type", "none")
    if discount_type not in BILL_DISCOUNT_TYPES:
        errors.add("discount.type", "Invalid discount type", discount_type)
    discount_amount = parse_int(discount.get("amount_paise", 0))
    if discount_amount is None or discount_amount < 0:
        errors.add("discount.amount_paise", "Discount amount must be positive", discount.get("amount_paise"))
        discount_amount = 0
    discount_percentage = _parse_percentage(errors, "discount.percentage", discount.get("percentage"))

    tax = payload.get("tax") or {}
    if not isinstance(tax, dict):
        errors.add("tax", "Tax must be an object", tax)
        tax = {}
    tax_percentage = _parse_percentage(errors, "tax.percentage", tax.get("percentage"))

    notes = clean_str(payload.get("notes"))
    if len(notes) > 300:
        errors.add("notes", "Notes cannot be more than 300 characters", notes)

    errors.raise_if_any()
    return {
        "payment_method": method,
        "paid_amount_paise": paid,
        "discount_type": discount_type,
        "discount_amount_paise": discount_amount,
        "discount_percentage": discount_percentage,
        "discount_reason": clean_str(discount.get("reason")) or None,
        "tax_percentage": tax_percentage,
        "notes": notes or None,
    }


def parse_payment_update(payload: dict) -> dict[str, object]:
    errors = FieldErrors()
    paid = parse_int(payload.get("paid_amount_paise"))
    if paid is None or paid < 0:
        errors.add("paid_amount_paise", "Paid amount must be a positive number", payload.get("paid_amount_paise"))
    method = payload.get("payment_method", _MISSING)
    if method is not _MISSING and method not in PAYMENT_METHODS:
        errors.add("payment_method", "Invalid payment method", method)
    errors.raise_if_any()
    return {
        "paid_amount_paise": paid,
        "payment_method": None if method is _MISSING else method,
        "notes": clean_str(payload.get("notes")) or None,
    }

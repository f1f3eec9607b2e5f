"""HTTP routes for appointments, feedback and admin auth."""
from __future__ import annotations

from datetime import timedelta

from flask import Blueprint, Flask, current_app, g, jsonify, request
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from .auth import (admin_required, build_token, get_jwt_identity, hash_password,
                   token_required, verify_password)
from .booking import BookingEngine
from .extensions import db
from .models import (ACTIVE_STATUSES, APPOINTMENT_STATUSES, WEEKDAYS, Admin,
                     Appointment, AppointmentService, Employee, to_rupees, utc_now,
                     utc_today)
from .validation import (EMAIL_RE, clean_str, parse_appointment_changes,
                         parse_booking_request, parse_date, parse_feedback,
                         parse_int)

bp = Blueprint("api", __name__)


def _engine() -> BookingEngine:
    return current_app.extensions["booking_engine"]


def _pagination(page: int, limit: int, total: int) -> dict[str, object]:
    total_pages = (total + limit - 1) // limit if total else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def _page_args(default_limit: int = 10) -> tuple[int, int] | None:
    page = parse_int(request.args.get("page", 1))
    limit = parse_int(request.args.get("limit", default_limit))
    if page is None or page < 1 or limit is None or not 1 <= limit <= 100:
        return None
    return page, limit


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# --- Auth ---

@bp.post("/auth/register")
def register_admin() -> tuple[dict[str, object], int]:
    """Create an admin account and return an access token.

    The first account can be created without a token; after that only a
    signed-in admin can add another.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            username:
              type: string
            password:
              type: string
            name:
              type: string
            email:
              type: string
            phone:
              type: string
    responses:
      201:
        description: Admin created
      400:
        description: Invalid payload or username taken
      401:
        description: Authentication required
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}

    if Admin.query.count() > 0 and get_jwt_identity() is None:
        return jsonify({"error": "unauthorized", "message": "Authentication required"}), 401

    username = clean_str(payload.get("username"))
    password = payload.get("password") or ""
    name = clean_str(payload.get("name"))
    email = clean_str(payload.get("email")).lower() or None
    phone = clean_str(payload.get("phone")) or None

    if len(username) < 3:
        return jsonify({"error": "invalid_payload", "message": "Username must be at least 3 characters"}), 400
    if len(password) < 6:
        return jsonify({"error": "invalid_payload", "message": "Password must be at least 6 characters"}), 400
    if not name:
        return jsonify({"error": "invalid_payload", "message": "Name is required"}), 400
    if email and not EMAIL_RE.match(email):
        return jsonify({"error": "invalid_payload", "message": "Please enter a valid email"}), 400

    if Admin.query.filter_by(username=username).first():
        return jsonify({"error": "conflict", "message": "Admin with this username already exists"}), 400

    try:
        admin = Admin(
            username=username,
            password_hash=hash_password(password),
            name=name,
            email=email,
            phone=phone,
            role="admin",
        )
        db.session.add(admin)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register admin", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Registered admin %s", admin.username)
    return jsonify({"token": build_token(admin), "admin": admin.to_dict()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate an admin by username/password and return an access token.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Login successful, returns access token
      400:
        description: Missing username or password
      401:
        description: Invalid credentials
      500:
        description: Server error
    """
    payload = request.get_json(silent=True) or {}

    username = clean_str(payload.get("username"))
    password = payload.get("password") or ""
    if not username or not password:
        return jsonify({"error": "invalid_payload", "message": "username and password are required"}), 400

    admin = Admin.query.filter_by(username=username, is_active=True).first()
    if admin is None or not verify_password(admin, password):
        current_app.logger.warning("Failed login for username %s", username)
        return jsonify({"error": "unauthorized", "message": "Invalid credentials"}), 401

    admin.last_login_at = utc_now()
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update last login timestamp", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"token": build_token(admin), "admin": admin.to_dict()}), 200


@bp.get("/auth/profile")
@token_required
def get_profile() -> tuple[dict[str, object], int]:
    return jsonify({"admin": g.current_admin.to_dict()}), 200


@bp.put("/auth/profile")
@token_required
def update_profile() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    admin = g.current_admin

    if "name" in payload:
        name = clean_str(payload.get("name"))
        if not name:
            return jsonify({"error": "invalid_payload", "message": "Name cannot be empty"}), 400
        admin.name = name
    if "email" in payload:
        email = clean_str(payload.get("email")).lower()
        if email and not EMAIL_RE.match(email):
            return jsonify({"error": "invalid_payload", "message": "Please enter a valid email"}), 400
        admin.email = email or None
    if "phone" in payload:
        admin.phone = clean_str(payload.get("phone")) or None

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update admin profile", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Profile updated successfully", "admin": admin.to_dict()}), 200


@bp.put("/auth/change-password")
@token_required
def change_password() -> tuple[dict[str, object], int]:
    payload = request.get_json(silent=True) or {}
    current_password = payload.get("current_password") or ""
    new_password = payload.get("new_password") or ""

    if not current_password:
        return jsonify({"error": "invalid_payload", "message": "Current password is required"}), 400
    if len(new_password) < 6:
        return jsonify({"error": "invalid_payload", "message": "New password must be at least 6 characters"}), 400

    admin = g.current_admin
    if not verify_password(admin, current_password):
        return jsonify({"error": "invalid_password", "message": "Current password is incorrect"}), 400

    admin.password_hash = hash_password(new_password)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to change password", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Password changed successfully"}), 200


@bp.get("/auth/verify")
@token_required
def verify_token() -> tuple[dict[str, object], int]:
    return jsonify({"valid": True, "admin": g.current_admin.to_dict()}), 200


# --- Appointments ---

@bp.get("/appointments")
def list_appointments() -> tuple[dict[str, object], int]:
    """List appointments, newest first, with optional filters.
    ---
    tags:
      - Appointments
    parameters:
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 10
        maximum: 100
      - name: status
        in: query
        type: string
      - name: date
        in: query
        type: string
        format: date
      - name: employee
        in: query
        type: integer
      - name: customer
        in: query
        type: integer
    responses:
      200:
        description: Appointments with pagination
      400:
        description: Invalid parameters
      500:
        description: Database error
    """
    paging = _page_args()
    if paging is None:
        return jsonify({"error": "invalid_query", "message": "page must be >= 1 and limit between 1 and 100"}), 400
    page, limit = paging

    query = Appointment.query

    status = request.args.get("status")
    if status:
        if status not in APPOINTMENT_STATUSES:
            return jsonify({"error": "invalid_query", "message": "Invalid status"}), 400
        query = query.filter(Appointment.status == status)

    if request.args.get("date"):
        on_date = parse_date(request.args["date"])
        if on_date is None:
            return jsonify({"error": "invalid_query", "message": "Invalid date format"}), 400
        query = query.filter(Appointment.appointment_date == on_date)

    for arg, column in (("employee", Appointment.employee_id), ("customer", Appointment.customer_id)):
        if request.args.get(arg):
            value = parse_int(request.args[arg])
            if value is None:
                return jsonify({"error": "invalid_query", "message": f"Invalid {arg} ID"}), 400
            query = query.filter(column == value)

    try:
        total = query.count()
        appointments = (
            query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to list appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "appointments": [appointment.to_dict() for appointment in appointments],
        "pagination": _pagination(page, limit, total),
    }), 200


@bp.get("/appointments/<int:appointment_id>")
def get_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return jsonify({"error": "not_found", "message": "Appointment not found"}), 404
    return jsonify({"appointment": appointment.to_dict()}), 200


@bp.post("/appointments")
def create_appointment() -> tuple[dict[str, object], int]:
    """Book an appointment, creating the customer on first visit.

    Prices come from the service catalog. A returning customer whose next
    completed visit is a multiple of five gets the cheapest service free.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            customer_info:
              type: object
              properties:
                name:
                  type: string
                phone:
                  type: string
                email:
                  type: string
            services:
              type: array
              items:
                type: string
            appointment_date:
              type: string
              format: date
            appointment_time:
              type: string
              example: "14:30"
            employee_id:
              type: integer
            notes:
              type: object
    responses:
      201:
        description: Appointment booked
      400:
        description: Validation error or unknown service
      404:
        description: Employee not found
      409:
        description: Time slot already taken
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}
    booking_request = parse_booking_request(payload)

    try:
        result = _engine().book(booking_request)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "message": "Appointment booked successfully",
        "appointment": result.appointment.to_dict(),
        "discount_applied": result.discount_applied,
    }), 201


@bp.put("/appointments/<int:appointment_id>")
@admin_required
def update_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Edit an appointment's customer snapshot, services, slot, status or notes.
    ---
    tags:
      - Appointments
    security:
      - Bearer: []
    responses:
      200:
        description: Appointment updated
      400:
        description: Validation error, invalid transition or billed appointment
      404:
        description: Appointment not found
      409:
        description: Time slot already taken
    """
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return jsonify({"error": "not_found", "message": "Appointment not found"}), 404

    changes = parse_appointment_changes(request.get_json(silent=True) or {})

    try:
        completed_now = _engine().update(appointment, changes)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update appointment %s", appointment_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    db.session.refresh(appointment)
    return jsonify({
        "message": "Appointment updated successfully",
        "appointment": appointment.to_dict(),
        "completion_recorded": completed_now,
    }), 200


@bp.put("/appointments/<int:appointment_id>/status")
@admin_required
def update_appointment_status(appointment_id: int) -> tuple[dict[str, object], int]:
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return jsonify({"error": "not_found", "message": "Appointment not found"}), 404

    payload = request.get_json(silent=True) or {}
    new_status = payload.get("status")
    if not isinstance(new_status, str) or not new_status:
        return jsonify({"error": "invalid_payload", "message": "status is required"}), 400

    try:
        completed_now = _engine().transition_status(appointment, new_status)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update status of appointment %s", appointment_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    db.session.refresh(appointment)
    return jsonify({
        "message": "Appointment status updated",
        "appointment": appointment.to_dict(),
        "completion_recorded": completed_now,
    }), 200


@bp.delete("/appointments/<int:appointment_id>")
@admin_required
def delete_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Delete an appointment unless it is both completed and billed.
    ---
    tags:
      - Appointments
    security:
      - Bearer: []
    responses:
      200:
        description: Appointment deleted
      400:
        description: Completed and billed appointments cannot be deleted
      404:
        description: Appointment not found
    """
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return jsonify({"error": "not_found", "message": "Appointment not found"}), 404

    try:
        _engine().delete(appointment)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete appointment %s", appointment_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Appointment deleted successfully"}), 200


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


@bp.get("/appointments/available-slots/<slot_date>")
def available_slots(slot_date: str) -> tuple[dict[str, object], int]:
    """List open times on a day, with the employees free at each one.
    ---
    tags:
      - Appointments
    parameters:
      - name: slot_date
        in: path
        type: string
        format: date
        required: true
      - name: employee
        in: query
        type: integer
      - name: service
        in: query
        type: string
        description: Only employees specialised in this service
    responses:
      200:
        description: Open slots
      400:
        description: Invalid parameters
    """
    on_date = parse_date(slot_date)
    if on_date is None:
        return jsonify({"error": "invalid_query", "message": "Invalid date format"}), 400

    employee_id = None
    if request.args.get("employee"):
        employee_id = parse_int(request.args["employee"])
        if employee_id is None:
            return jsonify({"error": "invalid_query", "message": "Invalid employee ID"}), 400
    service = clean_str(request.args.get("service"))
    weekday = WEEKDAYS[on_date.weekday()]

    query = Employee.query.filter(Employee.is_active.is_(True))
    if employee_id is not None:
        query = query.filter(Employee.employee_id == employee_id)
    employees = [
        employee
        for employee in query.order_by(Employee.employee_id).all()
        if weekday in (employee.working_days or [])
        and (not service or service in (employee.specializations or []))
    ]

    if not employees:
        return jsonify({
            "date": on_date.isoformat(),
            "available_slots": [],
            "message": "No employees available for selected date and service",
        }), 200

    booked = {
        (employee_id_, time_)
        for employee_id_, time_ in db.session.query(Appointment.employee_id, Appointment.appointment_time)
        .filter(
            Appointment.appointment_date == on_date,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.employee_id.in_([employee.employee_id for employee in employees]),
        )
        .all()
    }

    config = current_app.config
    interval = config["SLOT_INTERVAL_MINUTES"]
    slots = []
    for slot_minutes in range(config["SALON_OPEN_HOUR"] * 60, config["SALON_CLOSE_HOUR"] * 60, interval):
        slot_time = f"{slot_minutes // 60:02d}:{slot_minutes % 60:02d}"
        free = [
            employee.to_dict_basic()
            for employee in employees
            if _minutes(employee.working_hours_start) <= slot_minutes < _minutes(employee.working_hours_end)
            and (employee.employee_id, slot_time) not in booked
        ]
        if free:
            slots.append({"time": slot_time, "available_employees": free})

    return jsonify({"date": on_date.isoformat(), "available_slots": slots}), 200


@bp.get("/appointments/stats/dashboard")
def dashboard_stats() -> tuple[dict[str, object], int]:
    today = utc_today()
    week_start = today - timedelta(days=today.weekday())

    try:
        by_status = (
            db.session.query(
                Appointment.status,
                func.count(Appointment.appointment_id),
                func.coalesce(func.sum(Appointment.total_amount_paise), 0),
            )
            .filter(Appointment.appointment_date == today)
            .group_by(Appointment.status)
            .all()
        )
        week_count, week_revenue = (
            db.session.query(
                func.count(Appointment.appointment_id),
                func.coalesce(func.sum(Appointment.total_amount_paise), 0),
            )
            .filter(Appointment.appointment_date >= week_start, Appointment.status == "completed")
            .one()
        )
        popular = (
            db.session.query(
                AppointmentService.service_name,
                func.count(AppointmentService.line_id).label("bookings"),
                func.sum(AppointmentService.price_paise),
            )
            .join(Appointment, Appointment.appointment_id == AppointmentService.appointment_id)
            .filter(Appointment.appointment_date >= week_start, Appointment.status == "completed")
            .group_by(AppointmentService.service_name)
            .order_by(func.count(AppointmentService.line_id).desc())
            .limit(5)
            .all()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute dashboard stats", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    today_rows = [
        {"status": status, "count": count, "revenue_paise": int(revenue)}
        for status, count, revenue in by_status
    ]
    return jsonify({
        "today": {
            "date": today.isoformat(),
            "appointments": today_rows,
            "total_appointments": sum(row["count"] for row in today_rows),
        },
        "this_week": {
            "week_start": week_start.isoformat(),
            "total_appointments": week_count,
            "total_revenue_paise": int(week_revenue),
            "total_revenue": to_rupees(int(week_revenue)),
        },
        "popular_services": [
            {"service_name": name, "count": count, "revenue_paise": int(revenue or 0)}
            for name, count, revenue in popular
        ],
    }), 200


# --- Feedback ---

@bp.post("/appointments/<int:appointment_id>/feedback")
def submit_feedback(appointment_id: int) -> tuple[dict[str, object], int]:
    """Record the customer's rating for a completed appointment.
    ---
    tags:
      - Feedback
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            phone:
              type: string
            rating:
              type: integer
              minimum: 1
              maximum: 5
            feedback:
              type: string
    responses:
      200:
        description: Feedback saved
      400:
        description: Validation error, phone mismatch or appointment not completed
      404:
        description: Appointment not found
    """
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return jsonify({"error": "not_found", "message": "Appointment not found"}), 404

    phone, rating, feedback = parse_feedback(request.get_json(silent=True) or {})

    try:
        _engine().record_feedback(appointment, phone, rating, feedback)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save feedback for appointment %s", appointment_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "message": "Thank you for your feedback",
        "appointment_id": appointment.appointment_id,
        "rating": appointment.rating,
        "feedback": appointment.feedback,
    }), 200


@bp.get("/appointments/<int:appointment_id>/feedback-link")
@token_required
def feedback_link(appointment_id: int) -> tuple[dict[str, object], int]:
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return jsonify({"error": "not_found", "message": "Appointment not found"}), 404

    notifier = _engine().notifier
    url = notifier.feedback_url(appointment.appointment_id, appointment.customer_phone)
    return jsonify({"appointment_id": appointment.appointment_id, "feedback_url": url}), 200


@bp.get("/services/pricing")
def service_pricing() -> tuple[dict[str, object], int]:
    """Active services keyed by name, for the booking form."""
    try:
        pricing = _engine().catalog.pricing()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to load service pricing", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
    return jsonify({"services": pricing}), 200


def register_routes(app: Flask) -> None:
    from .routes_extended import bp_ext

    app.register_blueprint(bp)
    app.register_blueprint(bp_ext)

"""Extended routes: customers, employees, service catalog admin, billing."""
from __future__ import annotations

from datetime import datetime, timedelta

import stripe
from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .auth import admin_required, token_required
from .billing import billing_overview, build_receipt, create_bill, update_payment
from .booking import loyalty_visit_due
from .extensions import db
from .models import (PAYMENT_METHODS, PAYMENT_STATUSES, SERVICE_CATEGORIES,
                     Appointment, AppointmentService, Bill, Customer, Employee,
                     Service, to_rupees, utc_today)
from .routes import _page_args, _pagination
from .validation import (clean_str, parse_bill, parse_customer, parse_date,
                         parse_employee, parse_int, parse_payment_update,
                         parse_service)

bp_ext = Blueprint("api_ext", __name__)

CUSTOMER_SORT_FIELDS = {
    "name": Customer.name,
    "total_visits": Customer.total_visits,
    "total_spent": Customer.total_spent_paise,
    "last_visit": Customer.last_visit,
    "created_at": Customer.created_at,
}


def _invalid_query(message: str) -> tuple[dict[str, str], int]:
    return jsonify({"error": "invalid_query", "message": message}), 400


def _bool_arg(name: str) -> bool | None:
    value = request.args.get(name)
    if value is None or value == "":
        return None
    return value.lower() in {"1", "true", "yes"}


# --- Customers ---

@bp_ext.get("/customers")
@token_required
def list_customers() -> tuple[dict[str, object], int]:
    """List customers with search, sorting and pagination.
    ---
    tags:
      - Customers
    security:
      - Bearer: []
    parameters:
      - name: search
        in: query
        type: string
        description: Partial match on name, phone or email
      - name: sort_by
        in: query
        type: string
        enum: [name, total_visits, total_spent, last_visit, created_at]
      - name: sort_order
        in: query
        type: string
        enum: [asc, desc]
      - name: active
        in: query
        type: boolean
    responses:
      200:
        description: Customers with pagination
      400:
        description: Invalid parameters
    """
    paging = _page_args()
    if paging is None:
        return _invalid_query("page must be >= 1 and limit between 1 and 100")
    page, limit = paging

    sort_by = request.args.get("sort_by", "created_at")
    if sort_by not in CUSTOMER_SORT_FIELDS:
        return _invalid_query("Invalid sort field")
    sort_order = request.args.get("sort_order", "desc")
    if sort_order not in {"asc", "desc"}:
        return _invalid_query("Sort order must be asc or desc")

    query = Customer.query
    search = clean_str(request.args.get("search"))
    if len(search) > 100:
        return _invalid_query("Search term too long")
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Customer.name.ilike(pattern), Customer.phone.ilike(pattern), Customer.email.ilike(pattern))
        )
    active = _bool_arg("active")
    if active is not None:
        query = query.filter(Customer.is_active.is_(active))

    column = CUSTOMER_SORT_FIELDS[sort_by]
    try:
        total = query.count()
        customers = (
            query.order_by(column.asc() if sort_order == "asc" else column.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to list customers", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "customers": [customer.to_dict() for customer in customers],
        "pagination": _pagination(page, limit, total),
    }), 200


@bp_ext.get("/customers/<int:customer_id>")
@token_required
def get_customer(customer_id: int) -> tuple[dict[str, object], int]:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return jsonify({"error": "not_found", "message": "Customer not found"}), 404

    recent = (
        Appointment.query.filter_by(customer_id=customer_id)
        .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
        .limit(10)
        .all()
    )
    return jsonify({
        "customer": customer.to_dict(),
        "recent_appointments": [appointment.to_dict() for appointment in recent],
    }), 200


@bp_ext.post("/customers")
@admin_required
def create_customer() -> tuple[dict[str, object], int]:
    data = parse_customer(request.get_json(silent=True) or {})

    if Customer.query.filter_by(phone=data["phone"]).first():
        return jsonify({"error": "conflict", "message": "Customer with this phone number already exists"}), 400

    try:
        customer = Customer(**data)
        db.session.add(customer)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create customer", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Customer created successfully", "customer": customer.to_dict()}), 201


@bp_ext.put("/customers/<int:customer_id>")
@admin_required
def update_customer(customer_id: int) -> tuple[dict[str, object], int]:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return jsonify({"error": "not_found", "message": "Customer not found"}), 404

    data = parse_customer(request.get_json(silent=True) or {}, partial=True)

    if data.get("phone") and data["phone"] != customer.phone:
        if Customer.query.filter(Customer.phone == data["phone"], Customer.customer_id != customer_id).first():
            return jsonify({"error": "conflict", "message": "Phone number already in use by another customer"}), 400

    try:
        for key, value in data.items():
            setattr(customer, key, value)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update customer %s", customer_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Customer updated successfully", "customer": customer.to_dict()}), 200


@bp_ext.delete("/customers/<int:customer_id>")
@admin_required
def delete_customer(customer_id: int) -> tuple[dict[str, object], int]:
    """Deactivate a customer with no upcoming pending or confirmed bookings."""
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return jsonify({"error": "not_found", "message": "Customer not found"}), 404

    upcoming = Appointment.query.filter(
        Appointment.customer_id == customer_id,
        Appointment.status.in_(("pending", "confirmed")),
        Appointment.appointment_date >= utc_today(),
    ).count()
    if upcoming:
        return jsonify({
            "error": "has_pending_appointments",
            "message": "Cannot delete customer with pending appointments",
        }), 400

    try:
        customer.is_active = False
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate customer %s", customer_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Deactivated customer %s", customer_id)
    return jsonify({"message": "Customer deactivated successfully"}), 200


@bp_ext.get("/customers/<int:customer_id>/stats")
@token_required
def customer_stats(customer_id: int) -> tuple[dict[str, object], int]:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return jsonify({"error": "not_found", "message": "Customer not found"}), 404

    by_status = (
        db.session.query(
            Appointment.status,
            func.count(Appointment.appointment_id),
            func.coalesce(func.sum(Appointment.total_amount_paise), 0),
        )
        .filter(Appointment.customer_id == customer_id)
        .group_by(Appointment.status)
        .all()
    )
    services_used = (
        db.session.query(
            AppointmentService.service_name,
            func.count(AppointmentService.line_id),
            func.sum(AppointmentService.price_paise),
        )
        .join(Appointment, Appointment.appointment_id == AppointmentService.appointment_id)
        .filter(Appointment.customer_id == customer_id, Appointment.status == "completed")
        .group_by(AppointmentService.service_name)
        .order_by(func.count(AppointmentService.line_id).desc())
        .all()
    )

    return jsonify({
        "customer": {
            "id": customer.customer_id,
            "name": customer.name,
            "total_visits": customer.total_visits,
            "total_spent_paise": customer.total_spent_paise,
            "loyalty_points": customer.loyalty_points,
            "is_eligible_for_free_service": loyalty_visit_due(customer.total_visits or 0),
        },
        "appointment_stats": [
            {"status": status, "count": count, "total_amount_paise": int(amount)}
            for status, count, amount in by_status
        ],
        "service_stats": [
            {"service_name": name, "count": count, "total_spent_paise": int(spent or 0)}
            for name, count, spent in services_used
        ],
    }), 200


# --- Employees ---

@bp_ext.get("/employees")
def list_employees() -> tuple[dict[str, object], int]:
    query = Employee.query

    active = _bool_arg("active")
    if active is not None:
        query = query.filter(Employee.is_active.is_(active))
    role = request.args.get("role")
    if role:
        query = query.filter(Employee.role == role)

    try:
        employees = query.order_by(Employee.name.asc()).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to list employees", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    specialization = clean_str(request.args.get("specialization"))
    if specialization:
        employees = [e for e in employees if specialization in (e.specializations or [])]

    return jsonify({"employees": [employee.to_dict() for employee in employees]}), 200


@bp_ext.get("/employees/<int:employee_id>")
def get_employee(employee_id: int) -> tuple[dict[str, object], int]:
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        return jsonify({"error": "not_found", "message": "Employee not found"}), 404
    return jsonify({"employee": employee.to_dict()}), 200


@bp_ext.post("/employees")
@admin_required
def create_employee() -> tuple[dict[str, object], int]:
    """Add an employee.
    ---
    tags:
      - Employees
    security:
      - Bearer: []
    responses:
      201:
        description: Employee created
      400:
        description: Validation error or duplicate phone number
      500:
        description: Database error
    """
    data = parse_employee(request.get_json(silent=True) or {})

    if Employee.query.filter_by(phone=data["phone"]).first():
        return jsonify({"error": "conflict", "message": "Employee with this phone number already exists"}), 400

    try:
        employee = Employee(**data)
        db.session.add(employee)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create employee", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Created employee %s (%s)", employee.employee_id, employee.name)
    return jsonify({"message": "Employee created successfully", "employee": employee.to_dict()}), 201


@bp_ext.put("/employees/<int:employee_id>")
@admin_required
def update_employee(employee_id: int) -> tuple[dict[str, object], int]:
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        return jsonify({"error": "not_found", "message": "Employee not found"}), 404

    payload = request.get_json(silent=True) or {}
    data = parse_employee(payload, partial=True)

    if data.get("phone") and data["phone"] != employee.phone:
        if Employee.query.filter(Employee.phone == data["phone"], Employee.employee_id != employee_id).first():
            return jsonify({"error": "conflict", "message": "Phone number already in use by another employee"}), 400

    if "is_active" in payload:
        data["is_active"] = bool(payload["is_active"])

    try:
        for key, value in data.items():
            setattr(employee, key, value)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update employee %s", employee_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Employee updated successfully", "employee": employee.to_dict()}), 200


@bp_ext.delete("/employees/<int:employee_id>")
@admin_required
def delete_employee(employee_id: int) -> tuple[dict[str, object], int]:
    """Deactivate an employee with no upcoming active appointments."""
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        return jsonify({"error": "not_found", "message": "Employee not found"}), 404

    upcoming = Appointment.query.filter(
        Appointment.employee_id == employee_id,
        Appointment.status.in_(("pending", "confirmed")),
        Appointment.appointment_date >= utc_today(),
    ).count()
    if upcoming:
        return jsonify({
            "error": "has_pending_appointments",
            "message": "Cannot delete employee with pending appointments",
        }), 400

    try:
        employee.is_active = False
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate employee %s", employee_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Employee deactivated successfully"}), 200


@bp_ext.get("/employees/<int:employee_id>/performance")
def employee_performance(employee_id: int) -> tuple[dict[str, object], int]:
    """Completed work and revenue for an employee, default the current month.
    ---
    tags:
      - Employees
    parameters:
      - name: start_date
        in: query
        type: string
        format: date
      - name: end_date
        in: query
        type: string
        format: date
    responses:
      200:
        description: Performance summary
      400:
        description: Invalid date
      404:
        description: Employee not found
    """
    employee = db.session.get(Employee, employee_id)
    if employee is None:
        return jsonify({"error": "not_found", "message": "Employee not found"}), 404

    today = utc_today()
    start = today.replace(day=1)
    end = today
    if request.args.get("start_date"):
        start = parse_date(request.args["start_date"])
        if start is None:
            return _invalid_query("Invalid start date")
    if request.args.get("end_date"):
        end = parse_date(request.args["end_date"])
        if end is None:
            return _invalid_query("Invalid end date")

    in_range = (
        Appointment.employee_id == employee_id,
        Appointment.appointment_date >= start,
        Appointment.appointment_date <= end,
    )
    by_status = (
        db.session.query(
            Appointment.status,
            func.count(Appointment.appointment_id),
            func.coalesce(func.sum(Appointment.total_amount_paise), 0),
        )
        .filter(*in_range)
        .group_by(Appointment.status)
        .all()
    )
    completed_count, revenue = 0, 0
    for status, count, amount in by_status:
        if status == "completed":
            completed_count, revenue = count, int(amount)

    services = (
        db.session.query(AppointmentService.service_name, func.count(AppointmentService.line_id))
        .join(Appointment, Appointment.appointment_id == AppointmentService.appointment_id)
        .filter(*in_range, Appointment.status == "completed")
        .group_by(AppointmentService.service_name)
        .all()
    )

    return jsonify({
        "employee": employee.to_dict_basic(),
        "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "completed_appointments": completed_count,
        "revenue_paise": revenue,
        "revenue": to_rupees(revenue),
        "commission_paise": round(revenue * (employee.commission_percentage or 0) / 100),
        "appointment_stats": [
            {"status": status, "count": count, "total_amount_paise": int(amount)}
            for status, count, amount in by_status
        ],
        "services": [{"service_name": name, "count": count} for name, count in services],
        "rating": employee.rating,
        "rating_count": employee.rating_count,
    }), 200


@bp_ext.get("/employees/available/<service_name>")
def employees_for_service(service_name: str) -> tuple[dict[str, object], int]:
    employees = [
        employee
        for employee in Employee.query.filter(Employee.is_active.is_(True)).order_by(Employee.rating.desc()).all()
        if service_name in (employee.specializations or [])
    ]
    return jsonify({
        "service": service_name,
        "employees": [employee.to_dict_basic() for employee in employees],
    }), 200


# --- Services ---

@bp_ext.get("/services")
def list_services() -> tuple[dict[str, object], int]:
    query = Service.query

    category = request.args.get("category")
    if category:
        if category not in SERVICE_CATEGORIES:
            return _invalid_query("Invalid category")
        query = query.filter(Service.category == category)
    active = _bool_arg("active")
    if active is not None:
        query = query.filter(Service.is_active.is_(active))

    try:
        services = query.order_by(Service.category.asc(), Service.name.asc()).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to list services", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"services": [service.to_dict() for service in services]}), 200


@bp_ext.get("/services/<int:service_id>")
def get_service(service_id: int) -> tuple[dict[str, object], int]:
    service = db.session.get(Service, service_id)
    if service is None:
        return jsonify({"error": "not_found", "message": "Service not found"}), 404
    return jsonify({"service": service.to_dict()}), 200


@bp_ext.post("/services")
@admin_required
def create_service() -> tuple[dict[str, object], int]:
    """Add a service to the catalog.
    ---
    tags:
      - Services
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            description:
              type: string
            price_paise:
              type: integer
            duration_minutes:
              type: integer
            category:
              type: string
            tags:
              type: array
              items:
                type: string
    responses:
      201:
        description: Service created
      400:
        description: Validation error or duplicate name
    """
    data = parse_service(request.get_json(silent=True) or {})

    if Service.query.filter(func.lower(Service.name) == data["name"].lower()).first():
        return jsonify({"error": "conflict", "message": "Service with this name already exists"}), 400

    try:
        service = Service(**data)
        db.session.add(service)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Created service %s at %s paise", service.name, service.price_paise)
    return jsonify({"message": "Service created successfully", "service": service.to_dict()}), 201


@bp_ext.put("/services/<int:service_id>")
@admin_required
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    service = db.session.get(Service, service_id)
    if service is None:
        return jsonify({"error": "not_found", "message": "Service not found"}), 404

    data = parse_service(request.get_json(silent=True) or {}, partial=True)

    if data.get("name") and data["name"].lower() != service.name.lower():
        clash = Service.query.filter(
            func.lower(Service.name) == data["name"].lower(), Service.service_id != service_id
        ).first()
        if clash:
            return jsonify({"error": "conflict", "message": "Service with this name already exists"}), 400

    try:
        for key, value in data.items():
            setattr(service, key, value)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update service %s", service_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Service updated successfully", "service": service.to_dict()}), 200


@bp_ext.patch("/services/<int:service_id>/toggle-status")
@admin_required
def toggle_service(service_id: int) -> tuple[dict[str, object], int]:
    service = db.session.get(Service, service_id)
    if service is None:
        return jsonify({"error": "not_found", "message": "Service not found"}), 404

    try:
        service.is_active = not service.is_active
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to toggle service %s", service_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    state = "activated" if service.is_active else "deactivated"
    return jsonify({"message": f"Service {state} successfully", "service": service.to_dict()}), 200


@bp_ext.delete("/services/<int:service_id>")
@admin_required
def delete_service(service_id: int) -> tuple[dict[str, object], int]:
    """Remove a service from the catalog.

    Existing appointments keep their priced line items, so deleting a
    service never changes a booked total.
    """
    service = db.session.get(Service, service_id)
    if service is None:
        return jsonify({"error": "not_found", "message": "Service not found"}), 404

    try:
        db.session.delete(service)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete service %s", service_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Service deleted successfully"}), 200


# --- Billing ---

@bp_ext.get("/billing")
@admin_required
def list_bills() -> tuple[dict[str, object], int]:
    paging = _page_args()
    if paging is None:
        return _invalid_query("page must be >= 1 and limit between 1 and 100")
    page, limit = paging

    query = Bill.query
    status = request.args.get("status")
    if status:
        if status not in PAYMENT_STATUSES:
            return _invalid_query("Invalid payment status")
        query = query.filter(Bill.payment_status == status)
    method = request.args.get("method")
    if method:
        if method not in PAYMENT_METHODS:
            return _invalid_query("Invalid payment method")
        query = query.filter(Bill.payment_method == method)
    if request.args.get("start_date"):
        start_day = parse_date(request.args["start_date"])
        if start_day is None:
            return _invalid_query("Invalid start date")
        query = query.filter(Bill.billing_date >= datetime.combine(start_day, datetime.min.time()))
    if request.args.get("end_date"):
        end_day = parse_date(request.args["end_date"])
        if end_day is None:
            return _invalid_query("Invalid end date")
        # Inclusive of the whole end day
        query = query.filter(Bill.billing_date < datetime.combine(end_day + timedelta(days=1), datetime.min.time()))
    search = clean_str(request.args.get("search"))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Bill.bill_number.ilike(pattern), Bill.customer_name.ilike(pattern), Bill.customer_phone.ilike(pattern))
        )

    try:
        total = query.count()
        bills = query.order_by(Bill.billing_date.desc()).offset((page - 1) * limit).limit(limit).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to list bills", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"bills": [bill.to_dict() for bill in bills], "pagination": _pagination(page, limit, total)}), 200


@bp_ext.get("/billing/<int:bill_id>")
@admin_required
def get_bill(bill_id: int) -> tuple[dict[str, object], int]:
    bill = db.session.get(Bill, bill_id)
    if bill is None:
        return jsonify({"error": "not_found", "message": "Bill not found"}), 404
    return jsonify({"bill": bill.to_dict()}), 200


@bp_ext.post("/billing/create/<int:appointment_id>")
@admin_required
def create_bill_for_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Bill a completed appointment.
    ---
    tags:
      - Billing
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            payment_method:
              type: string
              enum: [cash, card, upi, online]
            paid_amount_paise:
              type: integer
            discount:
              type: object
              properties:
                type:
                  type: string
                amount_paise:
                  type: integer
                percentage:
                  type: number
                reason:
                  type: string
            tax:
              type: object
              properties:
                percentage:
                  type: number
            notes:
              type: string
    responses:
      201:
        description: Bill created
      400:
        description: Validation error, appointment not completed or already billed
      404:
        description: Appointment not found
      500:
        description: Database error
    """
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return jsonify({"error": "not_found", "message": "Appointment not found"}), 404

    data = parse_bill(request.get_json(silent=True) or {})

    try:
        bill = create_bill(appointment, data)
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.exception("Bill number clash for appointment %s", appointment_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create bill for appointment %s", appointment_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Bill created successfully", "bill": bill.to_dict()}), 201


@bp_ext.put("/billing/<int:bill_id>/payment")
@admin_required
def update_bill_payment(bill_id: int) -> tuple[dict[str, object], int]:
    bill = db.session.get(Bill, bill_id)
    if bill is None:
        return jsonify({"error": "not_found", "message": "Bill not found"}), 404

    data = parse_payment_update(request.get_json(silent=True) or {})

    try:
        update_payment(bill, data)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update payment on bill %s", bill_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Payment updated successfully", "bill": bill.to_dict()}), 200


@bp_ext.get("/billing/stats/overview")
@admin_required
def billing_stats() -> tuple[dict[str, object], int]:
    today = utc_today()
    start_day = today.replace(day=1)
    end_day = today
    if request.args.get("start_date"):
        start_day = parse_date(request.args["start_date"])
        if start_day is None:
            return _invalid_query("Invalid start date")
    if request.args.get("end_date"):
        end_day = parse_date(request.args["end_date"])
        if end_day is None:
            return _invalid_query("Invalid end date")

    try:
        overview = billing_overview(
            datetime.combine(start_day, datetime.min.time()),
            datetime.combine(end_day, datetime.max.time()),
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute billing stats", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify(overview), 200


@bp_ext.get("/billing/<int:bill_id>/receipt")
def bill_receipt(bill_id: int) -> tuple[dict[str, object], int]:
    bill = db.session.get(Bill, bill_id)
    if bill is None:
        return jsonify({"error": "not_found", "message": "Bill not found"}), 404
    return jsonify({"receipt": build_receipt(bill, current_app.config["SALON_NAME"])}), 200


@bp_ext.post("/billing/<int:bill_id>/payment-intent")
@admin_required
def create_bill_payment_intent(bill_id: int) -> tuple[dict[str, object], int]:
    """Create a Stripe PaymentIntent for the unpaid part of an online bill.
    ---
    tags:
      - Billing
    security:
      - Bearer: []
    responses:
      200:
        description: Payment intent created
        schema:
          type: object
          properties:
            client_secret:
              type: string
            payment_intent_id:
              type: string
      400:
        description: Bill is not an online payment or is already paid
      404:
        description: Bill not found
      500:
        description: Payments not configured or payment processing error
    """
    bill = db.session.get(Bill, bill_id)
    if bill is None:
        return jsonify({"error": "not_found", "message": "Bill not found"}), 404
    if bill.payment_method != "online":
        return jsonify({"error": "invalid_payment_method", "message": "Bill is not an online payment"}), 400

    amount_due = bill.total_amount_paise - (bill.paid_amount_paise or 0)
    if amount_due <= 0:
        return jsonify({"error": "already_paid", "message": "Bill is already paid"}), 400

    stripe_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not stripe_key:
        current_app.logger.warning("Stripe secret key not configured")
        return jsonify({"error": "server_error", "message": "Payments are not currently available"}), 500

    try:
        stripe.api_key = stripe_key
        intent = stripe.PaymentIntent.create(
            amount=amount_due,
            currency=current_app.config.get("STRIPE_CURRENCY", "inr"),
            metadata={"bill_id": bill.bill_id, "bill_number": bill.bill_number},
        )
    except stripe.StripeError as exc:
        current_app.logger.exception("Stripe payment intent creation failed for bill %s", bill_id, exc_info=exc)
        return jsonify({"error": "payment_error", "message": "Unable to create payment intent"}), 500

    try:
        bill.gateway_payment_id = intent.id
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to store payment intent on bill %s", bill_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"client_secret": intent.client_secret, "payment_intent_id": intent.id}), 200


# --- Feedback ---

@bp_ext.get("/feedback")
@token_required
def list_feedback() -> tuple[dict[str, object], int]:
    paging = _page_args(default_limit=20)
    if paging is None:
        return _invalid_query("page must be >= 1 and limit between 1 and 100")
    page, limit = paging

    query = Appointment.query.filter(Appointment.rating.isnot(None))
    rating = request.args.get("rating")
    if rating:
        value = parse_int(rating)
        if value is None or not 1 <= value <= 5:
            return _invalid_query("Rating must be between 1 and 5")
        query = query.filter(Appointment.rating == value)

    total = query.count()
    appointments = (
        query.order_by(Appointment.feedback_at.desc()).offset((page - 1) * limit).limit(limit).all()
    )
    average = db.session.query(func.avg(Appointment.rating)).filter(Appointment.rating.isnot(None)).scalar()

    return jsonify({
        "feedback": [
            {
                "appointment_id": appointment.appointment_id,
                "customer_info": {"name": appointment.customer_name, "phone": appointment.customer_phone},
                "employee": appointment.employee.to_dict_basic() if appointment.employee else None,
                "services": [line.service_name for line in appointment.services],
                "appointment_date": appointment.appointment_date.isoformat(),
                "rating": appointment.rating,
                "feedback": appointment.feedback,
                "feedback_at": appointment.feedback_at.isoformat() if appointment.feedback_at else None,
            }
            for appointment in appointments
        ],
        "average_rating": round(float(average), 2) if average is not None else None,
        "pagination": _pagination(page, limit, total),
    }), 200

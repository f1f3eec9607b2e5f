"""Appointment booking, loyalty discount and status lifecycle.

The :class:`BookingEngine` owns every write that touches an appointment's
slot, price or status. Storage goes through the shared Flask-SQLAlchemy
session; each public method commits its own unit of work.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from .catalog import CatalogEntry, ServiceCatalog
from .errors import (AppointmentLockedError, FeedbackNotAllowed,
                     InvalidTransitionError, NotFoundError, SlotConflictError,
                     StorageError, ValidationError)
from .extensions import db
from .models import (ACTIVE_STATUSES, APPOINTMENT_STATUSES, TERMINAL_STATUSES,
                     Appointment, AppointmentService, Customer, Employee,
                     utc_now)
from .notifications import FeedbackNotifier

LOYALTY_VISIT_INTERVAL = 5
LOYALTY_REASON = "5th visit free - cheapest service"
# One loyalty point per 10 rupees spent
PAISE_PER_LOYALTY_POINT = 1000


@dataclass(frozen=True)
class Discount:
    type: str = "none"
    amount_paise: int = 0
    reason: str | None = None

    @property
    def applied(self) -> bool:
        return self.type != "none"


@dataclass
class BookingRequest:
    name: str
    phone: str
    services: list[str]
    appointment_date: date
    appointment_time: str
    email: str | None = None
    employee_id: int | None = None
    notes: dict[str, str] = field(default_factory=dict)


@dataclass
class BookingResult:
    appointment: Appointment
    discount_applied: bool


@dataclass
class AppointmentChanges:
    customer_info: dict[str, str] | None = None
    services: list[str] | None = None
    appointment_date: date | None = None
    appointment_time: str | None = None
    employee_id: int | None = None
    employee_changed: bool = False
    status: str | None = None
    notes: dict[str, str] | None = None
    rating: int | None = None
    feedback: str | None = None

    @property
    def moves_slot(self) -> bool:
        return (
            self.appointment_date is not None
            or self.appointment_time is not None
            or self.employee_changed
        )


def loyalty_visit_due(total_visits: int) -> bool:
    """True when the next completed visit is a 5th, 10th, 15th... visit."""
    return total_visits > 0 and (total_visits + 1) % LOYALTY_VISIT_INTERVAL == 0


def loyalty_discount(total_visits: int, lines: list[CatalogEntry]) -> Discount:
    if not lines or not loyalty_visit_due(total_visits):
        return Discount()
    cheapest = min(lines, key=lambda line: line.price_paise)
    return Discount("loyalty", cheapest.price_paise, LOYALTY_REASON)


def loyalty_points_for(amount_paise: int) -> int:
    return max(amount_paise, 0) // PAISE_PER_LOYALTY_POINT


def find_conflicting(
    appointment_date: date,
    appointment_time: str,
    employee_id: int | None = None,
    exclude_id: int | None = None,
) -> Appointment | None:
    """Return an active appointment holding the same date and ``HH:MM`` key.

    Times are compared as plain strings; service durations never widen the
    slot. Without an employee, any active appointment at that time conflicts.
    """
    query = Appointment.query.filter(
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        Appointment.status.in_(ACTIVE_STATUSES),
    )
    if employee_id is not None:
        query = query.filter(Appointment.employee_id == employee_id)
    if exclude_id is not None:
        query = query.filter(Appointment.appointment_id != exclude_id)
    return query.first()


def is_slot_available(
    appointment_date: date,
    appointment_time: str,
    employee_id: int | None = None,
    exclude_id: int | None = None,
) -> bool:
    return find_conflicting(appointment_date, appointment_time, employee_id, exclude_id) is None


def increment_customer_stats(
    customer_id: int,
    visit_delta: int,
    spend_delta_paise: int,
    loyalty_delta: int,
    last_visit,
) -> None:
    db.session.execute(
        update(Customer)
        .where(Customer.customer_id == customer_id)
        .values(
            total_visits=Customer.total_visits + visit_delta,
            total_spent_paise=Customer.total_spent_paise + spend_delta_paise,
            loyalty_points=Customer.loyalty_points + loyalty_delta,
            last_visit=last_visit,
        )
    )


def increment_employee_completed(employee_id: int) -> None:
    db.session.execute(
        update(Employee)
        .where(Employee.employee_id == employee_id)
        .values(completed_appointments=Employee.completed_appointments + 1)
    )


def _line_items(entries: list[CatalogEntry]) -> list[AppointmentService]:
    return [
        AppointmentService(
            position=position,
            service_name=entry.name,
            price_paise=entry.price_paise,
            duration_minutes=entry.duration_minutes,
        )
        for position, entry in enumerate(entries)
    ]


class BookingEngine:
    def __init__(self, catalog: ServiceCatalog, notifier: FeedbackNotifier | None = None) -> None:
        self.catalog = catalog
        self.notifier = notifier

    # -- booking -----------------------------------------------------------

    def book(self, request: BookingRequest) -> BookingResult:
        # Services resolve before any write so an unknown name leaves nothing behind.
        entries = self.catalog.resolve(request.services)

        if request.employee_id is not None:
            self._get_active_employee(request.employee_id)

        customer = Customer.query.filter_by(phone=request.phone).first()
        if customer is None:
            customer = Customer(
                name=request.name,
                phone=request.phone,
                email=request.email,
                total_visits=0,
                total_spent_paise=0,
                loyalty_points=0,
            )
            db.session.add(customer)
            db.session.flush()
            current_app.logger.info("Created customer %s for phone %s", customer.customer_id, customer.phone)

        subtotal = sum(entry.price_paise for entry in entries)

        if not is_slot_available(request.appointment_date, request.appointment_time, request.employee_id):
            db.session.rollback()
            current_app.logger.warning(
                "Slot %s %s (employee %s) already taken",
                request.appointment_date,
                request.appointment_time,
                request.employee_id,
            )
            raise SlotConflictError()

        discount = loyalty_discount(customer.total_visits or 0, entries)

        appointment = Appointment(
            customer_id=customer.customer_id,
            customer_name=request.name,
            customer_phone=request.phone,
            employee_id=request.employee_id,
            appointment_date=request.appointment_date,
            appointment_time=request.appointment_time,
            status="pending",
            total_amount_paise=max(subtotal - discount.amount_paise, 0),
            discount_type=discount.type,
            discount_amount_paise=discount.amount_paise,
            discount_reason=discount.reason,
            customer_notes=request.notes.get("customer_notes"),
            employee_notes=request.notes.get("employee_notes"),
            admin_notes=request.notes.get("admin_notes"),
        )
        appointment.services = _line_items(entries)
        db.session.add(appointment)
        self._commit_slot(request.appointment_date, request.appointment_time, request.employee_id)

        current_app.logger.info(
            "Booked appointment %s for customer %s (total %s paise, discount %s)",
            appointment.appointment_id,
            customer.customer_id,
            appointment.total_amount_paise,
            discount.type,
        )
        return BookingResult(appointment=appointment, discount_applied=discount.applied)

    # -- edits and lifecycle -------------------------------------------------

    def update(self, appointment: Appointment, changes: AppointmentChanges) -> bool:
        """Apply an edit; returns True when the completion side effects fired."""
        touches_booking = (
            changes.moves_slot
            or changes.services is not None
            or (changes.status is not None and changes.status != appointment.status)
        )
        if appointment.is_billed and touches_booking:
            raise AppointmentLockedError("Billed appointments cannot be modified")

        if changes.employee_changed and changes.employee_id is not None:
            self._get_active_employee(changes.employee_id)

        new_date = changes.appointment_date or appointment.appointment_date
        new_time = changes.appointment_time or appointment.appointment_time
        new_employee = changes.employee_id if changes.employee_changed else appointment.employee_id
        target_status = changes.status or appointment.status

        if changes.moves_slot and target_status in ACTIVE_STATUSES:
            if not is_slot_available(new_date, new_time, new_employee, appointment.appointment_id):
                raise SlotConflictError()

        if changes.status is not None:
            self._check_transition(appointment.status, changes.status)

        if changes.customer_info:
            appointment.customer_name = changes.customer_info.get("name", appointment.customer_name)
            appointment.customer_phone = changes.customer_info.get("phone", appointment.customer_phone)

        if changes.services is not None:
            entries = self.catalog.resolve(changes.services)
            subtotal = sum(entry.price_paise for entry in entries)
            appointment.services = _line_items(entries)
            # The booking-time discount stays locked in
            appointment.total_amount_paise = max(subtotal - appointment.discount_amount_paise, 0)

        appointment.appointment_date = new_date
        appointment.appointment_time = new_time
        appointment.employee_id = new_employee

        if changes.notes:
            for key, value in changes.notes.items():
                setattr(appointment, key, value or None)
        if changes.rating is not None:
            appointment.rating = changes.rating
        if changes.feedback is not None:
            appointment.feedback = changes.feedback

        fired = False
        if changes.status is not None:
            fired = self._apply_status(appointment, changes.status)

        self._commit_slot(new_date, new_time, new_employee, exclude_id=appointment.appointment_id)
        if fired:
            self._after_completion(appointment)
        return fired

    def transition_status(self, appointment: Appointment, new_status: str) -> bool:
        if new_status not in APPOINTMENT_STATUSES:
            raise ValidationError(
                "Validation errors",
                errors=[{"field": "status", "message": "Invalid status", "value": new_status}],
            )
        if appointment.is_billed and new_status != appointment.status:
            raise AppointmentLockedError("Billed appointments cannot be modified")
        self._check_transition(appointment.status, new_status)

        fired = self._apply_status(appointment, new_status)
        self._commit_slot(
            appointment.appointment_date,
            appointment.appointment_time,
            appointment.employee_id,
            exclude_id=appointment.appointment_id,
        )
        if fired:
            self._after_completion(appointment)
        return fired

    def delete(self, appointment: Appointment) -> None:
        if appointment.status == "completed" and appointment.is_billed:
            raise AppointmentLockedError()
        db.session.delete(appointment)
        db.session.commit()
        current_app.logger.info("Deleted appointment %s", appointment.appointment_id)

    def record_feedback(self, appointment: Appointment, phone: str, rating: int, feedback: str | None) -> None:
        if phone != appointment.customer_phone:
            raise ValidationError(
                "Validation errors",
                errors=[{"field": "phone", "message": "Phone number does not match this appointment", "value": phone}],
            )
        if appointment.status != "completed":
            raise FeedbackNotAllowed()

        previous_rating = appointment.rating
        appointment.rating = rating
        appointment.feedback = feedback
        appointment.feedback_at = utc_now()

        employee = appointment.employee
        if employee is not None:
            count = employee.rating_count or 0
            total = (employee.rating or 0.0) * count
            if previous_rating is None:
                count += 1
                total += rating
            else:
                total += rating - previous_rating
            employee.rating_count = count
            employee.rating = round(total / count, 2) if count else 0.0

        db.session.commit()

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def _check_transition(current: str, new_status: str) -> None:
        if current == new_status:
            return
        if current in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Cannot change status of a {current} appointment")
        if new_status in ACTIVE_STATUSES and ACTIVE_STATUSES.index(new_status) < ACTIVE_STATUSES.index(current):
            raise InvalidTransitionError(f"Cannot move appointment from {current} back to {new_status}")

    def _apply_status(self, appointment: Appointment, new_status: str) -> bool:
        if new_status != "completed":
            appointment.status = new_status
            return False

        # Conditional update so duplicate completion requests fire side effects once
        result = db.session.execute(
            update(Appointment)
            .where(
                Appointment.appointment_id == appointment.appointment_id,
                Appointment.status != "completed",
            )
            .values(status="completed", updated_at=utc_now())
        )
        if result.rowcount != 1:
            return False

        amount = appointment.total_amount_paise or 0
        increment_customer_stats(
            appointment.customer_id,
            visit_delta=1,
            spend_delta_paise=amount,
            loyalty_delta=loyalty_points_for(amount),
            last_visit=utc_now(),
        )
        if appointment.employee_id is not None:
            increment_employee_completed(appointment.employee_id)
        return True

    def _after_completion(self, appointment: Appointment) -> None:
        current_app.logger.info("Appointment %s completed; customer stats updated", appointment.appointment_id)
        if self.notifier is not None:
            self.notifier.send(appointment)

    @staticmethod
    def _get_active_employee(employee_id: int) -> Employee:
        employee = db.session.get(Employee, employee_id)
        if employee is None or not employee.is_active:
            raise NotFoundError("Employee not found")
        return employee

    @staticmethod
    def _commit_slot(
        appointment_date: date,
        appointment_time: str,
        employee_id: int | None,
        exclude_id: int | None = None,
    ) -> None:
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if find_conflicting(appointment_date, appointment_time, employee_id, exclude_id) is not None:
                raise SlotConflictError() from exc
            current_app.logger.exception("Integrity error while saving appointment", exc_info=exc)
            raise StorageError() from exc

"""Domain errors raised by the booking, catalog and billing layers.

Each error carries the machine-readable ``error`` code and the HTTP status
the API answers with; the app-level handler renders them as JSON.
"""
from __future__ import annotations


class SalonError(Exception):
    status_code = 400
    error = "bad_request"
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None, errors: list[dict[str, object]] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": self.error, "message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class ValidationError(SalonError):
    error = "validation_error"
    default_message = "Validation errors"


class InvalidServiceError(SalonError):
    error = "invalid_service"

    def __init__(self, names: list[str]) -> None:
        self.names = list(names)
        super().__init__(
            f"Invalid services: {', '.join(self.names)}",
            errors=[{"field": "services", "message": "Unknown service", "value": name} for name in self.names],
        )


class SlotConflictError(SalonError):
    status_code = 409
    error = "slot_conflict"
    default_message = "Selected time slot is not available"


class NotFoundError(SalonError):
    status_code = 404
    error = "not_found"
    default_message = "Resource not found"


class ServiceNotFound(NotFoundError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Service not found: {name}")


class InvalidTransitionError(SalonError):
    error = "invalid_transition"
    default_message = "Status transition is not allowed"


class AppointmentLockedError(SalonError):
    error = "appointment_locked"
    default_message = "Cannot delete completed and billed appointment"


class FeedbackNotAllowed(SalonError):
    error = "feedback_not_allowed"
    default_message = "Feedback can only be given for completed appointments"


class BillingStateError(SalonError):
    error = "cannot_bill"
    default_message = "Appointment cannot be billed"


class StorageError(SalonError):
    status_code = 500
    error = "database_error"
    default_message = "Storage operation failed"

# booking/errors.py
from __future__ import annotations


class BookingError(Exception):
    """Base de errores de dominio. Cada uno sabe cómo mostrarse por HTTP."""

    status_code: int = 400
    detail: str = "Request could not be processed."

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class InvalidConfiguration(BookingError):
    status_code = 422
    detail = "Working hours are not configured correctly."


class SlotTaken(BookingError):
    status_code = 409
    detail = "Slot no longer available, please choose another time."


class InvalidTransition(BookingError):
    status_code = 409
    detail = "This action cannot be performed on a non-pending appointment."


class ValidationError(BookingError):
    status_code = 422
    detail = "Missing or invalid fields."


class StoreError(BookingError):
    status_code = 503
    detail = "Operation did not commit, please try again."


class NotFound(BookingError):
    status_code = 404
    detail = "Record not found."

# clinic_scheduler/services/errors.py
"""
Errores de dominio de la agenda. Cada uno lleva un `code` estable para que el
cliente pueda explicar *por qué* se rechazó una reserva o una cancelación.
"""
from __future__ import annotations


class SchedulingError(Exception):
    code = "scheduling_error"

    def __init__(self, code: str | None = None, message: str | None = None):
        if code:
            self.code = code
        self.message = message or self.code
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, {self.message!r})"


class NotFoundError(SchedulingError):
    code = "not_found"


class BookingError(SchedulingError):
    code = "booking_error"


class ConflictError(BookingError):
    code = "slot_taken"


class LifecycleError(SchedulingError):
    code = "invalid_transition"


# Códigos (kinds) expuestos al cliente
PROVIDER_NOT_FOUND = "provider_not_found"
PATIENT_NOT_FOUND = "patient_not_found"
APPOINTMENT_NOT_FOUND = "appointment_not_found"
PAST_DATE = "past_date"
SLOT_UNAVAILABLE = "slot_unavailable"
SLOT_TAKEN = "slot_taken"
ACCESS_DENIED = "access_denied"
CANCELLATION_WINDOW_VIOLATION = "cancellation_window_violation"
INVALID_TRANSITION = "invalid_transition"
STALE_UPDATE = "stale_update"
# Solo operativo: se registra en logs y en el resultado del barrido
DISPATCH_FAILURE = "dispatch_failure"

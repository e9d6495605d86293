# clinic_scheduler/services/booking.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from .clock import SystemClock
from .errors import (
    BookingError, ConflictError, NotFoundError,
    PATIENT_NOT_FOUND, PAST_DATE, SLOT_UNAVAILABLE, SLOT_TAKEN,
)
from .notifications import NotificationDispatcher, safe_dispatch
from .scheduling import Slot, get_active_provider, grid_for_day

logger = logging.getLogger(__name__)


@dataclass
class AppointmentDraft:
    patient_id: int
    provider_id: int
    appointment_date: date
    start_time: time
    end_time: time
    type: models.AppointmentType
    reason: str
    symptoms: List[str] = field(default_factory=list)
    patient_notes: Optional[str] = None


def _find_active(db: Session, provider_id: int, day: date, start: time) -> Optional[models.Appointment]:
    return (
        db.query(models.Appointment)
        .filter(models.Appointment.provider_id == provider_id)
        .filter(models.Appointment.appointment_date == day)
        .filter(models.Appointment.start_time == start)
        .filter(models.Appointment.status.in_(models.ACTIVE_STATUSES))
        .first()
    )


def try_book(db: Session, draft: AppointmentDraft, clock: Optional[SystemClock] = None) -> models.Appointment:
    """
    Inserta la cita en `pending` si el slot está libre.

    Revalida por sí misma que el proveedor exista y esté activo y que el inicio
    sea futuro, así que también es segura para llamadas directas.

    La lectura previa solo da un rechazo rápido; la garantía real es el índice
    único parcial (provider_id, appointment_date, start_time) sobre citas
    activas: si dos peticiones compiten, la que pierde recibe IntegrityError
    y se traduce a ConflictError("slot_taken").
    """
    clock = clock or SystemClock()
    get_active_provider(db, draft.provider_id)
    if clock.localize(draft.appointment_date, draft.start_time) <= clock.now():
        raise BookingError(PAST_DATE, "La cita debe ser en el futuro")

    if _find_active(db, draft.provider_id, draft.appointment_date, draft.start_time):
        raise ConflictError(SLOT_TAKEN, "Este horario ya está reservado")

    appt = models.Appointment(
        patient_id=draft.patient_id,
        provider_id=draft.provider_id,
        appointment_date=draft.appointment_date,
        start_time=draft.start_time,
        end_time=draft.end_time,
        type=draft.type,
        status=models.AppointmentStatus.pending,
        reason=draft.reason,
        symptoms=list(draft.symptoms or []),
        patient_notes=draft.patient_notes or None,
    )
    db.add(appt)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Reserva perdida por carrera provider=%s day=%s start=%s",
                    draft.provider_id, draft.appointment_date, draft.start_time)
        raise ConflictError(SLOT_TAKEN, "Este horario ya está reservado")
    db.refresh(appt)
    return appt


def book_appointment(
    db: Session,
    *,
    patient_id: int,
    provider_id: int,
    day: date,
    start_time: time,
    end_time: time,
    type: models.AppointmentType,
    reason: str,
    symptoms: Optional[List[str]] = None,
    notes: Optional[str] = None,
    clock: Optional[SystemClock] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    slot_minutes: Optional[int] = None,
) -> models.Appointment:
    clock = clock or SystemClock()

    get_active_provider(db, provider_id)

    if db.get(models.Patient, patient_id) is None:
        raise NotFoundError(PATIENT_NOT_FOUND, "Paciente no encontrado")

    if clock.localize(day, start_time) <= clock.now():
        raise BookingError(PAST_DATE, "La cita debe ser en el futuro")

    # El slot debe existir en la agenda del proveedor para ese día
    slot = Slot(start_time, end_time)
    if slot not in grid_for_day(db, provider_id, day, slot_minutes):
        raise BookingError(SLOT_UNAVAILABLE, "Horario fuera de la disponibilidad del proveedor")

    appt = try_book(db, AppointmentDraft(
        patient_id=patient_id,
        provider_id=provider_id,
        appointment_date=day,
        start_time=start_time,
        end_time=end_time,
        type=type,
        reason=reason,
        symptoms=symptoms or [],
        patient_notes=notes,
    ), clock=clock)
    logger.info("Cita reservada id=%s provider=%s patient=%s %s %s",
                appt.id, provider_id, patient_id, day.isoformat(), slot.label())

    # Si falla el aviso no se cae la reserva
    if dispatcher is not None:
        safe_dispatch(dispatcher.send_confirmation, appt)
    return appt

# clinic_scheduler/services/lifecycle.py
"""
Ciclo de vida de una cita.

    pending ──confirm──▶ confirmed ──complete──▶ completed
       │                    │ └─────no-show───▶ no-show
       └──────cancel────────┴─────cancel──────▶ cancelled

Los estados finales (completed, no-show, cancelled) no tienen salida. Toda
transición se valida antes de tocar la fila; si algo falla la cita queda igual.
Las escrituras usan la columna `version` (control optimista): si otra petición
modificó la cita entre la lectura y el commit, se responde `stale_update`.
"""
from __future__ import annotations
import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from .. import models
from ..models import AppointmentStatus as S
from .actors import Actor
from .clock import SystemClock
from .errors import (
    LifecycleError, NotFoundError,
    APPOINTMENT_NOT_FOUND, ACCESS_DENIED, INVALID_TRANSITION,
    CANCELLATION_WINDOW_VIOLATION, STALE_UPDATE,
)
from .notifications import NotificationDispatcher, safe_dispatch

logger = logging.getLogger(__name__)

TRANSITIONS = {
    S.pending: {S.confirmed, S.cancelled},
    S.confirmed: {S.completed, S.no_show, S.cancelled},
    S.completed: set(),
    S.no_show: set(),
    S.cancelled: set(),
}

# Solo el médico asignado puede llevar la cita a estos estados
PROVIDER_ONLY = {S.confirmed, S.completed, S.no_show}


def can_transition(current: S, target: S) -> bool:
    return target in TRANSITIONS.get(current, set())


def _load_owned(db: Session, appointment_id: int, actor: Actor) -> models.Appointment:
    appt = db.get(models.Appointment, appointment_id)
    if appt is None:
        raise NotFoundError(APPOINTMENT_NOT_FOUND, "Cita no encontrada")
    if not actor.owns(appt):
        raise LifecycleError(ACCESS_DENIED, "Acceso denegado")
    return appt


def _commit(db: Session, appt: models.Appointment) -> models.Appointment:
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.info("Actualización concurrente detectada en cita id=%s", appt.id)
        raise LifecycleError(STALE_UPDATE, "La cita fue modificada por otra operación; intente de nuevo")
    db.refresh(appt)
    return appt


def _set_notes(appt: models.Appointment, actor: Actor, notes: Optional[str]) -> None:
    if not notes:
        return
    if actor.is_provider:
        appt.provider_notes = notes
    else:
        appt.patient_notes = notes


def get_appointment(db: Session, appointment_id: int, actor: Actor) -> models.Appointment:
    return _load_owned(db, appointment_id, actor)


def list_appointments(
    db: Session,
    actor: Actor,
    status: Optional[S] = None,
    type: Optional[models.AppointmentType] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[models.Appointment], int]:
    """Citas propias del actor (paciente o médico), más recientes primero."""
    q = db.query(models.Appointment)
    if actor.is_provider:
        q = q.filter(models.Appointment.provider_id == actor.id)
    else:
        q = q.filter(models.Appointment.patient_id == actor.id)
    if status is not None:
        q = q.filter(models.Appointment.status == status)
    if type is not None:
        q = q.filter(models.Appointment.type == type)

    total = q.count()
    items = (
        q.order_by(models.Appointment.appointment_date.desc(), models.Appointment.start_time.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def cancel_appointment(
    db: Session,
    appointment_id: int,
    actor: Actor,
    *,
    clock: Optional[SystemClock] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    window_hours: Optional[int] = None,
    notes: Optional[str] = None,
) -> models.Appointment:
    """
    Cancela una cita pending/confirmed si faltan MÁS de `window_hours` horas
    (límite exacto excluido). El slot liberado vuelve a estar disponible en
    la siguiente consulta de disponibilidad.
    """
    clock = clock or SystemClock()
    window = timedelta(hours=settings.CANCELLATION_WINDOW_HOURS if window_hours is None else window_hours)

    appt = _load_owned(db, appointment_id, actor)
    if not can_transition(appt.status, S.cancelled):
        raise LifecycleError(INVALID_TRANSITION, f"No se puede cancelar una cita en estado {appt.status.value}")

    starts_at = clock.localize(appt.appointment_date, appt.start_time)
    if not (starts_at - clock.now() > window):
        raise LifecycleError(
            CANCELLATION_WINDOW_VIOLATION,
            f"No se puede cancelar con menos de {int(window.total_seconds() // 3600)} horas de anticipación",
        )

    appt.status = S.cancelled
    appt.cancelled_by = actor.role.value
    _set_notes(appt, actor, notes)
    appt = _commit(db, appt)
    logger.info("Cita cancelada id=%s por=%s", appt.id, appt.cancelled_by)

    if dispatcher is not None:
        safe_dispatch(dispatcher.send_cancellation, appt, appt.cancelled_by)
    return appt


def change_status(
    db: Session,
    appointment_id: int,
    actor: Actor,
    new_status: S,
    notes: Optional[str] = None,
    *,
    clock: Optional[SystemClock] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    window_hours: Optional[int] = None,
) -> models.Appointment:
    new_status = S(new_status)
    if new_status == S.cancelled:
        return cancel_appointment(
            db, appointment_id, actor,
            clock=clock, dispatcher=dispatcher, window_hours=window_hours, notes=notes,
        )

    appt = _load_owned(db, appointment_id, actor)
    if new_status in PROVIDER_ONLY and not actor.is_provider:
        raise LifecycleError(ACCESS_DENIED, "Solo el médico asignado puede cambiar este estado")
    if not can_transition(appt.status, new_status):
        raise LifecycleError(
            INVALID_TRANSITION,
            f"Transición inválida: {appt.status.value} → {new_status.value}",
        )

    previous = appt.status
    appt.status = new_status
    _set_notes(appt, actor, notes)
    appt = _commit(db, appt)
    logger.info("Cita id=%s %s → %s", appt.id, previous.value, appt.status.value)
    return appt


def attach_prescription(
    db: Session,
    appointment_id: int,
    actor: Actor,
    items: Iterable[dict],
    diagnosis: Optional[str] = None,
    follow_up_required: Optional[bool] = None,
    follow_up_date: Optional[date] = None,
) -> models.Appointment:
    """Receta/diagnóstico del médico; reemplaza la receta previa y no cambia el estado."""
    appt = _load_owned(db, appointment_id, actor)
    if not actor.is_provider:
        raise LifecycleError(ACCESS_DENIED, "Solo el médico asignado puede registrar recetas")
    if not appt.is_active:
        raise LifecycleError(
            INVALID_TRANSITION,
            f"No se puede registrar receta en una cita {appt.status.value}",
        )

    appt.prescription = [models.PrescriptionItem(**item) for item in items]
    if diagnosis:
        appt.diagnosis = diagnosis
    if follow_up_required is not None:
        appt.follow_up_required = follow_up_required
    if follow_up_date is not None:
        appt.follow_up_date = follow_up_date
    # Cambios solo en tablas hijas también deben pasar por la versión
    appt.updated_at = models.utcnow()
    appt = _commit(db, appt)
    logger.info("Receta registrada cita=%s items=%s", appt.id, len(appt.prescription))
    return appt

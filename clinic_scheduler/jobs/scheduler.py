# clinic_scheduler/jobs/scheduler.py
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Appointment, ACTIVE_STATUSES
from ..services.clock import SystemClock
from ..services.errors import DISPATCH_FAILURE
from ..services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

JOB_ID = "reminder_sweep"


@dataclass
class SweepResult:
    selected: int = 0
    sent: int = 0
    failed: int = 0
    skipped: bool = False


def reminder_window(now: datetime, lead_hours: int, tz) -> tuple[datetime, datetime]:
    """
    Ventana de 24 h que empieza en la medianoche (TZ de la clínica) del día
    de now + lead. Con lead = 24 h es exactamente el día calendario siguiente.
    """
    target = tz.normalize(now.astimezone(tz) + timedelta(hours=lead_hours)).date()
    start = tz.localize(datetime.combine(target, time(0, 0)))
    return start, start + timedelta(days=1)


def due_reminders(db: Session, day: date) -> list[Appointment]:
    return (
        db.query(Appointment)
        .filter(Appointment.appointment_date == day)
        .filter(Appointment.status.in_(ACTIVE_STATUSES))
        .filter(Appointment.reminder_sent.is_(False))
        .order_by(Appointment.start_time.asc(), Appointment.id.asc())
        .all()
    )


def _claim(db: Session, appointment_id: int, now: datetime, lease: timedelta) -> bool:
    """
    Reserva la cita para este barrido antes de despachar. Solo gana si no
    tiene recordatorio y nadie la reservó (o la reserva ya venció). Otros
    barridos (otros workers) la saltan mientras la reserva siga vigente.
    """
    result = db.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id)
        .where(Appointment.reminder_sent.is_(False))
        .where(or_(
            Appointment.reminder_claimed_at.is_(None),
            Appointment.reminder_claimed_at < now - lease,
        ))
        .values(reminder_claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def _release(db: Session, appointment_id: int) -> None:
    db.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id)
        .where(Appointment.reminder_sent.is_(False))
        .values(reminder_claimed_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def _mark_sent(db: Session, appointment_id: int, now: datetime) -> bool:
    """
    Check-and-set: solo la primera escritura gana. Regresa False si otra
    ejecución ya lo había marcado.
    """
    result = db.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id)
        .where(Appointment.reminder_sent.is_(False))
        .values(
            reminder_sent=True,
            reminder_sent_at=now,
            version=Appointment.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def reminder_sweep(
    session_factory: Callable[[], Session],
    dispatcher: NotificationDispatcher,
    clock: Optional[SystemClock] = None,
    lead_hours: Optional[int] = None,
    claim_minutes: Optional[int] = None,
) -> SweepResult:
    """
    Un barrido: busca citas activas del día objetivo sin recordatorio y
    despacha uno por cita. Cada cita se reserva antes del envío, así que dos
    barridos simultáneos (p. ej. uno por worker) no la duplican. Un fallo de
    despacho se registra, libera la reserva y la cita queda con
    reminder_sent = False para el siguiente barrido; nunca aborta el resto.
    """
    clock = clock or SystemClock()
    lead = settings.REMINDER_LEAD_HOURS if lead_hours is None else lead_hours
    lease = timedelta(minutes=claim_minutes or settings.REMINDER_CLAIM_MINUTES)
    now = clock.now()
    start, _end = reminder_window(now, lead, clock.tz)
    result = SweepResult()

    db: Session = session_factory()
    try:
        appts = due_reminders(db, start.date())
        result.selected = len(appts)
        logger.info("Barrido de recordatorios: %s citas para %s", result.selected, start.date().isoformat())

        for appt in appts:
            appt_id = appt.id
            try:
                claimed = _claim(db, appt_id, now, lease)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("No se pudo reservar recordatorio de cita=%s", appt_id)
                result.failed += 1
                continue
            if not claimed:
                logger.info("Recordatorio de cita=%s en curso o enviado por otro barrido", appt_id)
                continue

            try:
                ok = dispatcher.send_reminder(appt)
            except Exception:
                logger.exception("%s cita=%s (excepción)", DISPATCH_FAILURE, appt_id)
                ok = False
            if not ok:
                logger.warning("%s cita=%s; se reintentará en el siguiente barrido", DISPATCH_FAILURE, appt_id)
                result.failed += 1
                try:
                    _release(db, appt_id)
                except SQLAlchemyError:
                    db.rollback()
                    logger.exception("No se pudo liberar la reserva de cita=%s", appt_id)
                continue

            try:
                if _mark_sent(db, appt_id, now):
                    result.sent += 1
                else:
                    logger.warning("Recordatorio de cita=%s ya estaba marcado por otro barrido", appt_id)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("No se pudo marcar recordatorio de cita=%s", appt_id)
                result.failed += 1
    finally:
        db.close()

    logger.info("Barrido terminado: enviados=%s fallidos=%s", result.sent, result.failed)
    return result


class ReminderScheduler:
    """
    Dueño del temporizador periódico del barrido. Se arranca y detiene desde
    el ciclo de vida de la app; `run_sweep` también sirve para disparos manuales.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: NotificationDispatcher,
        clock: Optional[SystemClock] = None,
        interval_minutes: Optional[int] = None,
        lead_hours: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.clock = clock or SystemClock()
        self.interval_minutes = interval_minutes or settings.REMINDER_SWEEP_MINUTES
        self.lead_hours = settings.REMINDER_LEAD_HOURS if lead_hours is None else lead_hours
        self._lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def run_sweep(self) -> SweepResult:
        # Nunca dos barridos a la vez en este proceso
        if not self._lock.acquire(blocking=False):
            logger.warning("Barrido en curso; se omite esta ejecución")
            return SweepResult(skipped=True)
        try:
            return reminder_sweep(self.session_factory, self.dispatcher, self.clock, self.lead_hours)
        finally:
            self._lock.release()

    def start(self) -> BackgroundScheduler:
        if self.running:
            return self._scheduler
        scheduler = BackgroundScheduler(timezone=self.clock.tz)
        scheduler.add_job(
            self.run_sweep,
            IntervalTrigger(minutes=self.interval_minutes, timezone=self.clock.tz),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Recordatorios: barrido cada %s min (anticipación %s h)", self.interval_minutes, self.lead_hours)
        return scheduler

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("Recordatorios: scheduler detenido")

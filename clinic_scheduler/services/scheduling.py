# clinic_scheduler/services/scheduling.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, Iterator, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from .. import models
from .actors import Actor
from .errors import (
    SchedulingError, NotFoundError,
    PROVIDER_NOT_FOUND, ACCESS_DENIED,
)

logger = logging.getLogger(__name__)


# ====== Slots ======
@dataclass(frozen=True, order=True)
class Slot:
    start: time
    end: time

    def label(self) -> str:
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _to_time(total_minutes: int) -> time:
    return time(total_minutes // 60, total_minutes % 60)


@dataclass(frozen=True)
class SlotGrid:
    """
    Secuencia perezosa y reiniciable de slots contiguos de `minutes` minutos
    dentro de [start, end). El remanente final más corto que un slot se descarta.
    """
    start: time
    end: time
    minutes: int

    def __iter__(self) -> Iterator[Slot]:
        cur = _minutes(self.start)
        end = _minutes(self.end)
        while cur + self.minutes <= end:
            yield Slot(_to_time(cur), _to_time(cur + self.minutes))
            cur += self.minutes

    def __contains__(self, slot: object) -> bool:
        if not isinstance(slot, Slot):
            return False
        offset = _minutes(slot.start) - _minutes(self.start)
        return (
            offset >= 0
            and offset % self.minutes == 0
            and _minutes(slot.end) - _minutes(slot.start) == self.minutes
            and _minutes(slot.end) <= _minutes(self.end)
        )

    def __len__(self) -> int:
        span = _minutes(self.end) - _minutes(self.start)
        return max(span // self.minutes, 0)


def generate_slots(start: time, end: time, minutes: Optional[int] = None) -> SlotGrid:
    """
    Genera los slots de una ventana de disponibilidad. start >= end produce
    una secuencia vacía (no es error).
    """
    minutes = settings.SLOT_MINUTES if minutes is None else minutes
    if minutes <= 0:
        raise ValueError("La duración del slot debe ser mayor que 0 minutos")
    return SlotGrid(start, end, minutes)


# ====== Proveedores y ventanas ======
def get_active_provider(db: Session, provider_id: int) -> models.Provider:
    provider = db.get(models.Provider, provider_id)
    if provider is None or not provider.is_active:
        raise NotFoundError(PROVIDER_NOT_FOUND, "Proveedor no encontrado")
    return provider


def window_for_day(db: Session, provider_id: int, day: date) -> Optional[models.AvailabilityWindow]:
    return (
        db.query(models.AvailabilityWindow)
        .filter(models.AvailabilityWindow.provider_id == provider_id)
        .filter(models.AvailabilityWindow.weekday == day.weekday())
        .first()
    )


def grid_for_day(db: Session, provider_id: int, day: date, slot_minutes: Optional[int] = None) -> SlotGrid:
    window = window_for_day(db, provider_id, day)
    if window is None or not window.is_available:
        # Grid vacío: mismo tipo de resultado que una ventana sin slots
        return generate_slots(time(0, 0), time(0, 0), slot_minutes)
    return generate_slots(window.start_time, window.end_time, slot_minutes)


def booked_starts(db: Session, provider_id: int, day: date) -> set[time]:
    """Horas de inicio ocupadas por citas activas (pending/confirmed) ese día."""
    rows = (
        db.query(models.Appointment.start_time)
        .filter(models.Appointment.provider_id == provider_id)
        .filter(models.Appointment.appointment_date == day)
        .filter(models.Appointment.status.in_(models.ACTIVE_STATUSES))
        .all()
    )
    return {r[0] for r in rows}


# ====== Slots disponibles ======
def list_available_slots(
    db: Session,
    provider_id: int,
    day: date,
    slot_minutes: Optional[int] = None,
) -> List[Slot]:
    """
    Slots reservables del proveedor en `day`: los generados por su ventana del
    día de la semana, menos los que ya tienen una cita activa. Orden cronológico.
    """
    get_active_provider(db, provider_id)
    grid = grid_for_day(db, provider_id, day, slot_minutes)
    if not len(grid):
        return []
    booked = booked_starts(db, provider_id, day)
    slots = [s for s in grid if s.start not in booked]
    logger.debug("slots provider=%s day=%s total=%s booked=%s libres=%s",
                 provider_id, day, len(grid), len(booked), len(slots))
    return slots


def get_weekly_availability(db: Session, provider_id: int) -> List[models.AvailabilityWindow]:
    """Ventanas semanales del proveedor, de lunes a domingo."""
    provider = get_active_provider(db, provider_id)
    return list(provider.availability)


def set_weekly_availability(
    db: Session,
    provider_id: int,
    actor: Actor,
    windows: Iterable[dict],
) -> List[models.AvailabilityWindow]:
    """
    Reemplaza las ventanas semanales del proveedor (una por día de la semana).
    Solo el propio proveedor puede modificarlas.
    """
    provider = get_active_provider(db, provider_id)
    if not (actor.is_provider and actor.id == provider.id):
        raise SchedulingError(ACCESS_DENIED, "Solo el proveedor puede modificar su disponibilidad")

    by_weekday = {}
    for w in windows:
        if w.get("is_available", True) and w["start_time"] >= w["end_time"]:
            raise ValueError("start_time debe ser menor que end_time en una ventana disponible")
        by_weekday[w["weekday"]] = w

    provider.availability.clear()
    # flush para liberar la restricción única (provider_id, weekday) antes de reinsertar
    db.flush()
    for weekday in sorted(by_weekday):
        w = by_weekday[weekday]
        provider.availability.append(models.AvailabilityWindow(
            weekday=weekday,
            start_time=w["start_time"],
            end_time=w["end_time"],
            is_available=w.get("is_available", True),
        ))
    db.commit()
    db.refresh(provider)
    logger.info("Disponibilidad actualizada provider=%s dias=%s", provider.id, sorted(by_weekday))
    return list(provider.availability)

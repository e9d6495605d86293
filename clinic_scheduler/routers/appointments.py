from math import ceil
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..services import booking, lifecycle
from ..services.actors import Actor
from ..services.errors import SchedulingError, ACCESS_DENIED
from .deps import get_actor, get_clock, get_db, get_dispatcher

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", response_model=schemas.AppointmentOut, status_code=201)
def book(
    req: schemas.BookRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
    dispatcher=Depends(get_dispatcher),
):
    # Solo un paciente reserva, y siempre a su nombre
    if actor.is_provider:
        raise SchedulingError(ACCESS_DENIED, "Solo los pacientes pueden reservar citas")
    return booking.book_appointment(
        db,
        patient_id=actor.id,
        provider_id=req.provider_id,
        day=req.date,
        start_time=req.start_time,
        end_time=req.end_time,
        type=req.type,
        reason=req.reason,
        symptoms=req.symptoms,
        notes=req.notes,
        clock=clock,
        dispatcher=dispatcher,
    )


@router.get("", response_model=schemas.AppointmentListResponse)
def my_appointments(
    status: Optional[models.AppointmentStatus] = None,
    type: Optional[models.AppointmentType] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    items, total = lifecycle.list_appointments(db, actor, status=status, type=type, page=page, limit=limit)
    return {
        "appointments": items,
        "pagination": {"current": page, "pages": ceil(total / limit), "total": total, "limit": limit},
    }


@router.get("/{appointment_id}", response_model=schemas.AppointmentOut)
def get_one(appointment_id: int, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return lifecycle.get_appointment(db, appointment_id, actor)


@router.patch("/{appointment_id}/status", response_model=schemas.AppointmentOut)
def change_status(
    appointment_id: int,
    req: schemas.StatusChangeRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
    dispatcher=Depends(get_dispatcher),
):
    return lifecycle.change_status(
        db, appointment_id, actor, req.status, req.notes,
        clock=clock, dispatcher=dispatcher,
    )


@router.patch("/{appointment_id}/cancel", response_model=schemas.AppointmentOut)
def cancel(
    appointment_id: int,
    req: Optional[schemas.CancelRequest] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
    dispatcher=Depends(get_dispatcher),
):
    return lifecycle.cancel_appointment(
        db, appointment_id, actor,
        clock=clock, dispatcher=dispatcher, notes=req.reason if req else None,
    )


@router.post("/{appointment_id}/prescription", response_model=schemas.AppointmentOut)
def add_prescription(
    appointment_id: int,
    req: schemas.PrescriptionRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return lifecycle.attach_prescription(
        db, appointment_id, actor,
        items=[item.model_dump() for item in req.prescription],
        diagnosis=req.diagnosis,
        follow_up_required=req.follow_up_required,
        follow_up_date=req.follow_up_date,
    )

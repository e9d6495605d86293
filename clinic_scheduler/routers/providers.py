from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from dateutil import parser as dtparser

from .. import schemas
from ..services.actors import Actor
from ..services.scheduling import get_weekly_availability, list_available_slots, set_weekly_availability
from .deps import get_actor, get_db

router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("/{provider_id}/slots", response_model=schemas.SlotsResponse)
def get_slots(
    provider_id: int,
    date: str = Query(..., description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
):
    try:
        d = dtparser.parse(date).date()
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="Formato de fecha inválido. Usa YYYY-MM-DD.")
    slots = list_available_slots(db, provider_id, d)
    return schemas.SlotsResponse(
        provider_id=provider_id,
        date=d,
        slots=[
            schemas.SlotOut(start_time=s.start.strftime("%H:%M"), end_time=s.end.strftime("%H:%M"))
            for s in slots
        ],
    )


@router.get("/{provider_id}/availability", response_model=list[schemas.AvailabilityWindowOut])
def get_availability(provider_id: int, db: Session = Depends(get_db)):
    return get_weekly_availability(db, provider_id)


@router.put("/{provider_id}/availability", response_model=list[schemas.AvailabilityWindowOut])
def put_availability(
    provider_id: int,
    req: schemas.AvailabilityUpdateRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return set_weekly_availability(db, provider_id, actor, [w.model_dump() for w in req.windows])

# clinic_scheduler/routers/admin.py
from __future__ import annotations
from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from .. import models, schemas
from .deps import get_db, get_reminder_scheduler, require_admin

router = APIRouter(tags=["admin"])

# ──────────────────────────────────────────────────────────────────────────────
# Básicos
# (recuerda: main.py monta este router con prefix="/admin")
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/ping")
def admin_ping():
    return {"ok": True, "ts": datetime.utcnow().isoformat()}

@router.get("/health")
def admin_health(reminders=Depends(get_reminder_scheduler)):
    return {
        "ok": True,
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "tz": settings.TIMEZONE,
        "reminder_scheduler": "running" if reminders is not None and reminders.running else "stopped",
        "ts": datetime.utcnow().isoformat(),
    }

# ──────────────────────────────────────────────────────────────────────────────
# Altas (la gestión real de usuarios vive en otro servicio)
# ──────────────────────────────────────────────────────────────────────────────
@router.post("/providers", response_model=schemas.ProviderOut, status_code=201, dependencies=[Depends(require_admin)])
def admin_create_provider(req: schemas.ProviderIn, db: Session = Depends(get_db)):
    provider = models.Provider(**req.model_dump(), is_active=True)
    db.add(provider)
    db.commit()
    db.refresh(provider)
    return provider

@router.post("/patients", response_model=schemas.PatientOut, status_code=201, dependencies=[Depends(require_admin)])
def admin_create_patient(req: schemas.PatientIn, db: Session = Depends(get_db)):
    patient = models.Patient(**req.model_dump())
    db.add(patient)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ya existe un paciente con ese contacto")
    db.refresh(patient)
    return patient

# ──────────────────────────────────────────────────────────────────────────────
# Recordatorios: barrido manual (útil para probar sin esperar al intervalo)
# ──────────────────────────────────────────────────────────────────────────────
@router.post("/reminders/run", response_model=schemas.SweepOut, dependencies=[Depends(require_admin)])
def admin_run_reminders(reminders=Depends(get_reminder_scheduler)):
    if reminders is None:
        raise HTTPException(status_code=503, detail="Scheduler de recordatorios no configurado")
    return asdict(reminders.run_sweep())

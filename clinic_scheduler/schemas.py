from __future__ import annotations
import datetime as dt
from datetime import datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import AppointmentStatus, AppointmentType


class SlotOut(BaseModel):
    start_time: str
    end_time: str

class SlotsResponse(BaseModel):
    provider_id: int
    date: dt.date
    slots: List[SlotOut]


class _WindowBase(BaseModel):
    weekday: int = Field(ge=0, le=6, description="0 = lunes ... 6 = domingo")
    start_time: time
    end_time: time
    is_available: bool = True

class AvailabilityWindowIn(_WindowBase):
    @model_validator(mode="after")
    def _check_range(self):
        if self.is_available and self.start_time >= self.end_time:
            raise ValueError("start_time debe ser menor que end_time")
        return self

class AvailabilityWindowOut(_WindowBase):
    model_config = ConfigDict(from_attributes=True)

class AvailabilityUpdateRequest(BaseModel):
    windows: List[AvailabilityWindowIn]

    @field_validator("windows")
    @classmethod
    def _one_per_weekday(cls, v):
        days = [w.weekday for w in v]
        if len(days) != len(set(days)):
            raise ValueError("Solo se permite una ventana por día de la semana")
        return v


class BookRequest(BaseModel):
    provider_id: int
    date: dt.date
    start_time: time
    end_time: time
    type: AppointmentType
    reason: str = Field(min_length=5, max_length=500)
    symptoms: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("reason")
    @classmethod
    def _strip_reason(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 5:
            raise ValueError("El motivo debe tener entre 5 y 500 caracteres")
        return v


class StatusChangeRequest(BaseModel):
    status: AppointmentStatus
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("status")
    @classmethod
    def _not_pending(cls, v: AppointmentStatus) -> AppointmentStatus:
        if v == AppointmentStatus.pending:
            raise ValueError("pending solo se asigna al reservar")
        return v

class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class PrescriptionItemIn(BaseModel):
    medication: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    frequency: str = Field(min_length=1)
    duration: Optional[str] = None
    instructions: Optional[str] = None

class PrescriptionItemOut(PrescriptionItemIn):
    model_config = ConfigDict(from_attributes=True)

class PrescriptionRequest(BaseModel):
    prescription: List[PrescriptionItemIn]
    diagnosis: Optional[str] = Field(default=None, max_length=1000)
    follow_up_required: Optional[bool] = None
    follow_up_date: Optional[dt.date] = None


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    provider_id: int
    date: dt.date = Field(validation_alias="appointment_date")
    start_time: time
    end_time: time
    type: AppointmentType
    status: AppointmentStatus
    reason: str
    symptoms: List[str] = Field(default_factory=list)
    patient_notes: Optional[str] = None
    provider_notes: Optional[str] = None
    diagnosis: Optional[str] = None
    prescription: List[PrescriptionItemOut] = Field(default_factory=list)
    follow_up_required: bool = False
    follow_up_date: Optional[dt.date] = None
    cancelled_by: Optional[str] = None
    reminder_sent: bool = False
    reminder_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class Pagination(BaseModel):
    current: int
    pages: int
    total: int
    limit: int

class AppointmentListResponse(BaseModel):
    appointments: List[AppointmentOut]
    pagination: Pagination


class ProviderIn(BaseModel):
    name: str = Field(min_length=1)
    specialization: Optional[str] = None
    contact: Optional[str] = None

class ProviderOut(ProviderIn):
    model_config = ConfigDict(from_attributes=True)
    id: int
    is_active: bool

class PatientIn(BaseModel):
    name: str
    contact: str
    consent_messages: bool = True

class PatientOut(PatientIn):
    model_config = ConfigDict(from_attributes=True)
    id: int

class SweepOut(BaseModel):
    selected: int
    sent: int
    failed: int
    skipped: bool

# clinic_scheduler/models.py
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    Integer, String, Date, DateTime, Time, Enum, ForeignKey, Boolean, Text, JSON,
    UniqueConstraint, Index, text,
)
from datetime import datetime, date, time
import enum
from .database import Base


def utcnow() -> datetime:
    return datetime.utcnow()


def _values(enum_cls):
    # Guarda el valor ("no-show") y no el nombre del miembro ("no_show")
    return [m.value for m in enum_cls]


class AppointmentType(str, enum.Enum):
    in_person = "in-person"
    remote = "remote"
    phone = "phone"


class AppointmentStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"
    no_show = "no-show"


# Cuentan contra la regla de no doble reserva
ACTIVE_STATUSES = (AppointmentStatus.pending, AppointmentStatus.confirmed)


class Provider(Base):
    __tablename__ = "providers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    specialization: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, default=None)
    contact: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    availability = relationship(
        "AvailabilityWindow",
        back_populates="provider",
        cascade="all, delete-orphan",
        order_by="AvailabilityWindow.weekday",
    )


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint("contact", name="uq_patients_contact"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, default=None, index=True)
    # ÚNICO y NO NULO: número de WhatsApp al que se despachan avisos
    contact: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    consent_messages: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    appointments = relationship(
        "Appointment",
        back_populates="patient",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class AvailabilityWindow(Base):
    __tablename__ = "availability_windows"
    __table_args__ = (
        UniqueConstraint("provider_id", "weekday", name="uq_availability_provider_weekday"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    provider_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
    )
    # 0 = lunes ... 6 = domingo (date.weekday())
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    provider = relationship("Provider", back_populates="availability")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # Regla de no doble reserva: un solo activo por (proveedor, fecha, hora inicio)
        Index(
            "uq_appointments_active_slot",
            "provider_id", "appointment_date", "start_time",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
        Index("ix_appointments_patient_date", "patient_id", "appointment_date"),
        Index("ix_appointments_provider_date", "provider_id", "appointment_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    patient_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
    )
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    type: Mapped[AppointmentType] = mapped_column(
        Enum(AppointmentType, name="appointment_type", values_callable=_values),
        nullable=False,
    )
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status", values_callable=_values),
        default=AppointmentStatus.pending,
        nullable=False,
        index=True,
    )
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    symptoms: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    patient_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    provider_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    diagnosis: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    follow_up_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follow_up_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, default=None)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, default=None)

    reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    # Reserva temporal del envío: un barrido la toma antes de despachar
    reminder_claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    # Control optimista: cada UPDATE compara y sube la versión
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    patient = relationship("Patient", back_populates="appointments")
    provider = relationship("Provider")
    prescription = relationship(
        "PrescriptionItem",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="PrescriptionItem.id",
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class PrescriptionItem(Base):
    __tablename__ = "prescription_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    appointment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    medication: Mapped[str] = mapped_column(String(200), nullable=False)
    dosage: Mapped[str] = mapped_column(String(120), nullable=False)
    frequency: Mapped[str] = mapped_column(String(120), nullable=False)
    duration: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, default=None)
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    appointment = relationship("Appointment", back_populates="prescription")

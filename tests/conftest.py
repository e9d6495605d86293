import os
from datetime import date, datetime, time

import pytest
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test_clinic.db')
os.environ.setdefault('TIMEZONE', 'UTC')
os.environ.setdefault('SCHEDULER_ENABLED', 'false')
os.environ.setdefault('DRY_RUN', 'true')

from clinic_scheduler import models  # noqa: E402
from clinic_scheduler.database import build_engine, init_db  # noqa: E402
from clinic_scheduler.services.clock import FixedClock  # noqa: E402

# Lunes 2 de marzo de 2026, 09:00 UTC
NOW = datetime(2026, 3, 2, 9, 0)
MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)
WEDNESDAY = date(2026, 3, 4)
SUNDAY = date(2026, 3, 8)


class FakeDispatcher:
    """Registra cada envío; `fail_ids` / `raise_ids` simulan fallos por cita."""

    def __init__(self):
        self.confirmations = []
        self.reminders = []
        self.cancellations = []
        self.fail_ids = set()
        self.raise_ids = set()

    def _outcome(self, appointment) -> bool:
        if appointment.id in self.raise_ids:
            raise TimeoutError('twilio timeout')
        return appointment.id not in self.fail_ids

    def send_confirmation(self, appointment) -> bool:
        self.confirmations.append(appointment.id)
        return self._outcome(appointment)

    def send_reminder(self, appointment) -> bool:
        self.reminders.append(appointment.id)
        return self._outcome(appointment)

    def send_cancellation(self, appointment, cancelled_by) -> bool:
        self.cancellations.append((appointment.id, cancelled_by))
        return self._outcome(appointment)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'clinic.db'}")
    init_db(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW, 'UTC')


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def provider(db):
    provider = models.Provider(name='Dra. Ana López', specialization='General', contact='+525500000001')
    # Lunes a viernes 09:00-10:00
    for weekday in range(5):
        provider.availability.append(
            models.AvailabilityWindow(weekday=weekday, start_time=time(9, 0), end_time=time(10, 0))
        )
    db.add(provider)
    db.commit()
    db.refresh(provider)
    return provider


@pytest.fixture
def patient(db):
    patient = models.Patient(name='Juan Pérez', contact='+525511111111')
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


@pytest.fixture
def other_patient(db):
    patient = models.Patient(name='María Ruiz', contact='+525522222222')
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


@pytest.fixture
def make_appointment(db, provider, patient):
    """Inserta una cita directamente (sin reglas de reserva)."""

    def _make(day=TUESDAY, start=time(9, 0), end=time(9, 30), status=models.AppointmentStatus.pending, **kwargs):
        appointment = models.Appointment(
            patient_id=kwargs.pop('patient_id', patient.id),
            provider_id=kwargs.pop('provider_id', provider.id),
            appointment_date=day,
            start_time=start,
            end_time=end,
            type=kwargs.pop('type', models.AppointmentType.in_person),
            status=status,
            reason=kwargs.pop('reason', 'Chequeo general'),
            **kwargs,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make

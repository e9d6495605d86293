from datetime import date, datetime, time, timedelta

import pytest

from clinic_scheduler import models
from clinic_scheduler.models import AppointmentStatus as S
from clinic_scheduler.services import lifecycle
from clinic_scheduler.services.actors import Actor
from clinic_scheduler.services.clock import FixedClock
from clinic_scheduler.services.errors import LifecycleError, NotFoundError

from conftest import TUESDAY, WEDNESDAY


def _error_code(callable_, *args, **kwargs) -> str:
    with pytest.raises((LifecycleError, NotFoundError)) as exception_info:
        callable_(*args, **kwargs)
    return exception_info.value.code


def test_provider_confirms_then_completes(db, provider, make_appointment) -> None:
    appointment = make_appointment()
    doctor = Actor.provider(provider.id)

    confirmed = lifecycle.change_status(db, appointment.id, doctor, S.confirmed, notes='Traer estudios')
    assert confirmed.status == S.confirmed
    assert confirmed.provider_notes == 'Traer estudios'

    completed = lifecycle.change_status(db, appointment.id, doctor, S.completed)
    assert completed.status == S.completed


def test_provider_marks_no_show(db, provider, make_appointment) -> None:
    appointment = make_appointment(status=S.confirmed)

    result = lifecycle.change_status(db, appointment.id, Actor.provider(provider.id), S.no_show)

    assert result.status == S.no_show


def test_pending_cannot_jump_to_completed(db, provider, make_appointment) -> None:
    appointment = make_appointment()

    code = _error_code(lifecycle.change_status, db, appointment.id, Actor.provider(provider.id), S.completed)

    assert code == 'invalid_transition'
    db.refresh(appointment)
    assert appointment.status == S.pending


@pytest.mark.parametrize('terminal', [S.completed, S.no_show, S.cancelled])
@pytest.mark.parametrize('target', [S.confirmed, S.completed, S.no_show])
def test_terminal_states_have_no_exit(db, provider, make_appointment, terminal, target) -> None:
    appointment = make_appointment(status=terminal)

    code = _error_code(lifecycle.change_status, db, appointment.id, Actor.provider(provider.id), target)

    assert code == 'invalid_transition'


def test_status_sequence_is_monotonic(db, provider, make_appointment) -> None:
    order = {S.pending: 0, S.confirmed: 1, S.completed: 2, S.no_show: 2, S.cancelled: 2}
    appointment = make_appointment()
    doctor = Actor.provider(provider.id)
    observed = [appointment.status]

    for target in (S.confirmed, S.confirmed, S.completed, S.confirmed, S.no_show):
        try:
            observed.append(lifecycle.change_status(db, appointment.id, doctor, target).status)
        except LifecycleError:
            db.refresh(appointment)
            observed.append(appointment.status)

    assert observed == [S.pending, S.confirmed, S.confirmed, S.completed, S.completed, S.completed]
    assert [order[s] for s in observed] == sorted(order[s] for s in observed)


def test_patient_cannot_confirm(db, patient, make_appointment) -> None:
    appointment = make_appointment()

    code = _error_code(lifecycle.change_status, db, appointment.id, Actor.patient(patient.id), S.confirmed)

    assert code == 'access_denied'


def test_strangers_are_denied(db, provider, other_patient, make_appointment) -> None:
    appointment = make_appointment()

    assert _error_code(lifecycle.get_appointment, db, appointment.id, Actor.patient(other_patient.id)) == 'access_denied'
    assert _error_code(
        lifecycle.change_status, db, appointment.id, Actor.provider(provider.id + 1), S.confirmed,
    ) == 'access_denied'


def test_missing_appointment(db, provider) -> None:
    assert _error_code(lifecycle.get_appointment, db, 404, Actor.provider(provider.id)) == 'appointment_not_found'


# ──────────────────────────────────────────────────────────────────────────────
# Cancelación (ventana de 24 h; el límite exacto queda excluido)
# ──────────────────────────────────────────────────────────────────────────────
@pytest.mark.parametrize(
    ('now', 'allowed'),
    [
        (datetime(2026, 3, 3, 8, 0), True),    # faltan 25 h
        (datetime(2026, 3, 3, 9, 0), False),   # faltan exactamente 24 h
        (datetime(2026, 3, 3, 10, 0), False),  # faltan 23 h
    ],
)
def test_cancellation_window(db, patient, make_appointment, dispatcher, now, allowed) -> None:
    appointment = make_appointment(day=WEDNESDAY, start=time(9, 0), end=time(9, 30), status=S.confirmed)
    clock = FixedClock(now, 'UTC')

    if allowed:
        result = lifecycle.cancel_appointment(
            db, appointment.id, Actor.patient(patient.id), clock=clock, dispatcher=dispatcher, window_hours=24,
        )
        assert result.status == S.cancelled
        assert result.cancelled_by == 'patient'
        assert dispatcher.cancellations == [(appointment.id, 'patient')]
    else:
        code = _error_code(
            lifecycle.cancel_appointment,
            db, appointment.id, Actor.patient(patient.id), clock=clock, dispatcher=dispatcher, window_hours=24,
        )
        assert code == 'cancellation_window_violation'
        db.refresh(appointment)
        assert appointment.status == S.confirmed
        assert dispatcher.cancellations == []


def test_provider_can_cancel_pending_through_change_status(db, provider, make_appointment, clock, dispatcher) -> None:
    appointment = make_appointment(day=WEDNESDAY)

    result = lifecycle.change_status(
        db, appointment.id, Actor.provider(provider.id), S.cancelled, notes='Congreso médico',
        clock=clock, dispatcher=dispatcher,
    )

    assert result.status == S.cancelled
    assert result.cancelled_by == 'provider'
    assert result.provider_notes == 'Congreso médico'
    assert dispatcher.cancellations == [(appointment.id, 'provider')]


def test_cancel_completed_is_invalid(db, patient, make_appointment, clock) -> None:
    appointment = make_appointment(day=WEDNESDAY, status=S.completed)

    code = _error_code(lifecycle.cancel_appointment, db, appointment.id, Actor.patient(patient.id), clock=clock)

    assert code == 'invalid_transition'


def test_cancellation_dispatch_failure_is_swallowed(db, patient, make_appointment, clock, dispatcher) -> None:
    appointment = make_appointment(day=WEDNESDAY)
    dispatcher.raise_ids = {appointment.id}

    result = lifecycle.cancel_appointment(db, appointment.id, Actor.patient(patient.id), clock=clock, dispatcher=dispatcher)

    assert result.status == S.cancelled


def test_cancellation_window_is_configurable(db, patient, make_appointment) -> None:
    appointment = make_appointment(day=TUESDAY, start=time(9, 0))
    clock = FixedClock(datetime(2026, 3, 3, 6, 0), 'UTC')  # faltan 3 h

    result = lifecycle.cancel_appointment(db, appointment.id, Actor.patient(patient.id), clock=clock, window_hours=2)

    assert result.status == S.cancelled


# ──────────────────────────────────────────────────────────────────────────────
# Concurrencia optimista
# ──────────────────────────────────────────────────────────────────────────────
def test_concurrent_update_is_reported_as_stale(session_factory, provider, make_appointment) -> None:
    appointment_id = make_appointment().id
    doctor = Actor.provider(provider.id)
    first, second = session_factory(), session_factory()
    try:
        stale = second.get(models.Appointment, appointment_id)  # lectura vieja (version 1)
        assert stale.version == 1

        lifecycle.change_status(first, appointment_id, doctor, S.confirmed)

        code = _error_code(lifecycle.change_status, second, appointment_id, doctor, S.confirmed)
        assert code == 'stale_update'
    finally:
        first.close()
        second.close()


# ──────────────────────────────────────────────────────────────────────────────
# Recetas y listados
# ──────────────────────────────────────────────────────────────────────────────
def test_attach_prescription_keeps_status(db, provider, make_appointment) -> None:
    appointment = make_appointment(status=S.confirmed)

    result = lifecycle.attach_prescription(
        db,
        appointment.id,
        Actor.provider(provider.id),
        items=[{'medication': 'Paracetamol', 'dosage': '500 mg', 'frequency': 'cada 8 h', 'duration': '5 días'}],
        diagnosis='Cefalea tensional',
        follow_up_required=True,
        follow_up_date=date(2026, 3, 20),
    )

    assert result.status == S.confirmed
    assert [item.medication for item in result.prescription] == ['Paracetamol']
    assert result.diagnosis == 'Cefalea tensional'
    assert result.follow_up_required is True
    assert result.follow_up_date == date(2026, 3, 20)

    replaced = lifecycle.attach_prescription(
        db, appointment.id, Actor.provider(provider.id),
        items=[{'medication': 'Ibuprofeno', 'dosage': '400 mg', 'frequency': 'cada 12 h'}],
    )
    assert [item.medication for item in replaced.prescription] == ['Ibuprofeno']


def test_attach_prescription_rules(db, provider, patient, make_appointment) -> None:
    active = make_appointment()
    finished = make_appointment(start=time(9, 30), end=time(10, 0), status=S.completed)
    item = {'medication': 'Loratadina', 'dosage': '10 mg', 'frequency': 'diaria'}

    assert _error_code(
        lifecycle.attach_prescription, db, active.id, Actor.patient(patient.id), [item],
    ) == 'access_denied'
    assert _error_code(
        lifecycle.attach_prescription, db, finished.id, Actor.provider(provider.id), [item],
    ) == 'invalid_transition'


def test_list_appointments_is_scoped_and_paginated(db, provider, patient, other_patient, make_appointment) -> None:
    for offset in range(3):
        make_appointment(day=TUESDAY + timedelta(days=7 * offset))
    make_appointment(day=WEDNESDAY, patient_id=other_patient.id)

    mine, total = lifecycle.list_appointments(db, Actor.patient(patient.id), page=1, limit=2)
    assert total == 3
    assert [a.appointment_date for a in mine] == [date(2026, 3, 17), date(2026, 3, 10)]

    doctors, total = lifecycle.list_appointments(db, Actor.provider(provider.id), status=S.pending)
    assert total == 4
    assert len(doctors) == 4

# clinic_scheduler/services/notifications.py
from __future__ import annotations
import logging
from typing import Callable, Optional, Protocol

from .. import models
from .twilio_client import send_whatsapp

logger = logging.getLogger(__name__)

_TYPE_LABELS = {
    models.AppointmentType.in_person: "presencial",
    models.AppointmentType.remote: "en línea",
    models.AppointmentType.phone: "telefónica",
}


class NotificationDispatcher(Protocol):
    """
    Envío de avisos de una cita. Cada método regresa True si el aviso salió
    (o no debía salir) y False si falló; nunca debe propagar excepciones
    fuera del núcleo de agenda.
    """

    def send_confirmation(self, appointment: models.Appointment) -> bool: ...

    def send_reminder(self, appointment: models.Appointment) -> bool: ...

    def send_cancellation(self, appointment: models.Appointment, cancelled_by: str) -> bool: ...


def _when(appt: models.Appointment) -> str:
    return f"{appt.appointment_date.strftime('%d/%m/%Y')} {appt.start_time.strftime('%H:%M')}"


def _provider_name(appt: models.Appointment) -> str:
    return appt.provider.name if appt.provider else "su médico"


def confirmation_body(appt: models.Appointment) -> str:
    """Mensaje de reserva (la cita queda pendiente de confirmación del médico)."""
    return (
        "✅ *Cita reservada*\n"
        f"Con: {_provider_name(appt)}\n"
        f"Fecha y hora: {_when(appt)} ({_TYPE_LABELS.get(appt.type, appt.type)})\n"
        "Si necesita cancelar, hágalo con al menos 24 horas de anticipación."
    )


def reminder_body(appt: models.Appointment) -> str:
    return (
        "⏰ Recordatorio: su cita es mañana\n"
        f"Con: {_provider_name(appt)}\n"
        f"Fecha y hora: {_when(appt)}\n"
        "Por favor llegue 15 minutos antes."
    )


def cancellation_body(appt: models.Appointment, cancelled_by: str) -> str:
    who = "por el médico" if cancelled_by == "provider" else "a su solicitud"
    return (
        f"❌ Su cita del {_when(appt)} fue cancelada {who}.\n"
        "Puede reservar un nuevo horario cuando guste."
    )


class TwilioNotificationDispatcher:
    """Despachador por WhatsApp (Twilio). Respeta DRY_RUN y el consentimiento del paciente."""

    def __init__(self, sender: Callable[[str, str], dict] = send_whatsapp):
        self._sender = sender

    def _deliver(self, contact: Optional[str], body: str, template: str) -> bool:
        if not contact:
            logger.warning("Aviso %s sin contacto; se omite", template)
            return False
        result = self._sender(contact, body)
        if result.get("error"):
            logger.warning("Aviso %s falló to=%s err=%s", template, contact, result["error"])
            return False
        return True

    def _send_to_patient(self, appt: models.Appointment, body: str, template: str) -> bool:
        patient = appt.patient
        if patient is not None and not patient.consent_messages:
            # sin consentimiento: no es un fallo y no debe reintentarse
            logger.info("Paciente %s sin consentimiento; aviso %s omitido", patient.id, template)
            return True
        return self._deliver(patient.contact if patient else None, body, template)

    def send_confirmation(self, appointment: models.Appointment) -> bool:
        return self._send_to_patient(appointment, confirmation_body(appointment), "confirmation")

    def send_reminder(self, appointment: models.Appointment) -> bool:
        return self._send_to_patient(appointment, reminder_body(appointment), "reminder")

    def send_cancellation(self, appointment: models.Appointment, cancelled_by: str) -> bool:
        ok = self._send_to_patient(appointment, cancellation_body(appointment, cancelled_by), "cancellation")
        # Si cancela el paciente, también se avisa al médico
        if cancelled_by == "patient" and appointment.provider and appointment.provider.contact:
            body = (
                f"El paciente canceló la cita del {_when(appointment)}. "
                "El horario vuelve a estar disponible."
            )
            ok = self._deliver(appointment.provider.contact, body, "cancellation_provider") and ok
        return ok


def safe_dispatch(send: Callable[..., bool], *args) -> bool:
    """Ejecuta un envío sin dejar escapar errores: fallo = False (y queda en logs)."""
    try:
        ok = bool(send(*args))
    except Exception:
        logger.exception("Error despachando aviso %s", getattr(send, "__name__", send))
        return False
    if not ok:
        logger.warning("Aviso %s no enviado", getattr(send, "__name__", send))
    return ok

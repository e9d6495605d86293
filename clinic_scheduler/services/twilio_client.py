# clinic_scheduler/services/twilio_client.py
import logging

from twilio.rest import Client
from twilio.http.http_client import TwilioHttpClient

from ..config import settings

logger = logging.getLogger(__name__)


def _normalize_wa(number: str) -> str:
    if not number:
        return number
    number = number.strip()
    if not number.startswith("whatsapp:"):
        number = f"whatsapp:{number}"
    number = number.replace("whatsapp: ", "whatsapp:")
    prefix, rest = number.split(":", 1)
    rest = rest.strip()
    if not rest.startswith("+"):
        rest = "+" + rest.lstrip("+").replace(" ", "")
    return f"{prefix}:{rest}"


def get_twilio_client(timeout: float | None = None) -> Client | None:
    if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN:
        return None
    # Llamada acotada: un timeout se trata como fallo de despacho
    http_client = TwilioHttpClient(timeout=timeout or settings.NOTIFY_TIMEOUT_SECONDS)
    return Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, http_client=http_client)


def send_whatsapp(to: str, body: str, client: Client | None = None) -> dict:
    """
    Envía un WhatsApp usando Twilio.
    - Si DRY_RUN=true: no envía; solo log y regresa {"dry_run": True, ...}
    - Si faltan credenciales: modo MOCK (no envía) y regresa {"mock": True, ...}
    - Si hay error al enviar: registra y regresa {"error": "..."}
    """
    to_norm = _normalize_wa(to)
    from_norm = _normalize_wa(settings.TWILIO_WHATSAPP_FROM or "")
    flat = body.replace("\n", " | ")

    # DRY RUN: solo log, no se consume Twilio
    if settings.DRY_RUN:
        logger.info("[DRY_RUN WHATSAPP] to=%s body=%s", to_norm, flat)
        return {"dry_run": True, "to": to_norm, "body": body}

    client = client or get_twilio_client()

    # MOCK si no hay credenciales/configuración
    if client is None or not from_norm:
        logger.warning("[WA MOCK] to=%s body=%s", to_norm, flat)
        return {"mock": True, "to": to_norm, "body": body}

    try:
        msg = client.messages.create(from_=from_norm, to=to_norm, body=body)
        return {"sid": msg.sid, "to": to_norm}
    except Exception as e:
        logger.error("[WA ERROR] to=%s err=%s", to_norm, e)
        return {"error": str(e), "to": to_norm}

# clinic_scheduler/routers/deps.py
from __future__ import annotations
from typing import Optional

from fastapi import Header, HTTPException, Request

from ..config import settings
from ..database import get_db  # noqa: F401  (reexport para los routers)
from ..services.actors import Actor, ActorRole


def get_clock(request: Request):
    return request.app.state.clock


def get_dispatcher(request: Request):
    return request.app.state.dispatcher


def get_reminder_scheduler(request: Request):
    return request.app.state.reminder_scheduler


def get_actor(
    x_actor_role: Optional[str] = Header(default=None),
    x_actor_id: Optional[str] = Header(default=None),
) -> Actor:
    """
    La autenticación vive fuera de este servicio: el gateway resuelve el
    usuario y lo pasa en X-Actor-Role / X-Actor-Id.
    """
    if not x_actor_role or not x_actor_id:
        raise HTTPException(status_code=401, detail="Faltan encabezados de actor")
    try:
        role = ActorRole(x_actor_role.strip().lower())
        actor_id = int(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Encabezados de actor inválidos")
    return Actor(role, actor_id)


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    expected = (settings.ADMIN_TOKEN or "").strip()
    provided = (x_admin_token or "").strip()
    if not expected:
        raise HTTPException(status_code=403, detail="ADMIN_TOKEN no configurado")
    if provided != expected:
        raise HTTPException(status_code=401, detail="Token inválido")

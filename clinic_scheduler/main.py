# clinic_scheduler/main.py
import os
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db, SessionLocal
from .jobs.scheduler import ReminderScheduler
from .services.clock import SystemClock
from .services.errors import SchedulingError
from .services.notifications import TwilioNotificationDispatcher

# Routers
from .routers.appointments import router as appointments_router
from .routers.providers import router as providers_router
from .routers.admin import router as admin_router

# ──────────────────────────────────────────────────────────────────────────────
# LOGGING
# Controla niveles con variables de entorno:
#   LOG_LEVEL, SQLA_LOG_LEVEL, APSCHEDULER_LOG_LEVEL, UVICORN_LOG_LEVEL
# ──────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logging.getLogger("sqlalchemy.engine").setLevel(
    getattr(logging, os.getenv("SQLA_LOG_LEVEL", "WARNING"), logging.WARNING)
)
logging.getLogger("apscheduler").setLevel(
    getattr(logging, os.getenv("APSCHEDULER_LOG_LEVEL", "WARNING"), logging.WARNING)
)
logging.getLogger("uvicorn.error").setLevel(
    getattr(logging, os.getenv("UVICORN_LOG_LEVEL", "INFO"), logging.INFO)
)

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# FastAPI App
# Colaboradores inyectados vía app.state (nada de singletons globales de aviso)
# ──────────────────────────────────────────────────────────────────────────────
app = FastAPI(title=settings.APP_NAME)

app.state.clock = SystemClock(settings.TIMEZONE)
app.state.dispatcher = TwilioNotificationDispatcher()
app.state.reminder_scheduler = ReminderScheduler(
    SessionLocal,
    app.state.dispatcher,
    clock=app.state.clock,
    interval_minutes=settings.REMINDER_SWEEP_MINUTES,
    lead_hours=settings.REMINDER_LEAD_HOURS,
)

# Monta rutas
app.include_router(providers_router)
app.include_router(appointments_router)
app.include_router(admin_router, prefix="/admin")  # ← admin.py NO debe repetir /admin

# ──────────────────────────────────────────────────────────────────────────────
# Errores de dominio → HTTP
# ──────────────────────────────────────────────────────────────────────────────
_STATUS_BY_CODE = {
    "past_date": 400,
    "slot_unavailable": 400,
    "cancellation_window_violation": 400,
    "access_denied": 403,
    "slot_taken": 409,
    "invalid_transition": 409,
    "stale_update": 409,
}

def status_for(code: str) -> int:
    if code.endswith("_not_found"):
        return 404
    return _STATUS_BY_CODE.get(code, 400)

@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    return JSONResponse(
        status_code=status_for(exc.code),
        content={"code": exc.code, "detail": exc.message},
    )

# ──────────────────────────────────────────────────────────────────────────────
# Ciclo de vida
# ──────────────────────────────────────────────────────────────────────────────
@app.on_event("startup")
def on_startup():
    init_db()
    if settings.SCHEDULER_ENABLED:
        app.state.reminder_scheduler.start()
    logger.info("Startup completo: %s (%s)", settings.APP_NAME, settings.ENV)

@app.on_event("shutdown")
def on_shutdown():
    app.state.reminder_scheduler.shutdown()

@app.get("/")
def root():
    return {"ok": True, "app": settings.APP_NAME, "env": settings.ENV}

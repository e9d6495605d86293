# clinic_scheduler/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ===== App =====
    APP_NAME: str = "clinic_scheduler"
    ENV: str = "dev"
    # TZ local de la clínica (fechas y horas de citas se interpretan aquí)
    TIMEZONE: str = "America/Mexico_City"

    # ===== DB =====
    # En producción define DATABASE_URL con tu Postgres. Local puede caer a SQLite.
    DATABASE_URL: str = "sqlite:///./clinic.db"

    DB_POOL_SIZE: int = 2
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 min

    # ===== Slots y políticas de citas =====
    SLOT_MINUTES: int = 30
    CANCELLATION_WINDOW_HOURS: int = 24

    # ===== Recordatorios =====
    REMINDER_LEAD_HOURS: int = 24
    REMINDER_SWEEP_MINUTES: int = 60
    # Tiempo que una cita queda reservada por un barrido; si el proceso muere
    # a media entrega, otro barrido la retoma al vencer
    REMINDER_CLAIM_MINUTES: int = 15
    # Permite arrancar la API sin el barrido (tests, workers separados)
    SCHEDULER_ENABLED: bool = True

    # ===== Twilio =====
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_WHATSAPP_FROM: Optional[str] = None
    # Timeout de cada envío; un timeout cuenta como fallo de despacho
    NOTIFY_TIMEOUT_SECONDS: float = 10.0

    # Simulación (True = no envía mensajes reales)
    DRY_RUN: bool = False

    # ===== Admin =====
    ADMIN_TOKEN: Optional[str] = None

    def model_post_init(self, __context) -> None:
        """
        Validaciones mínimas de las constantes de agenda: valores <= 0 dejarían
        el generador de slots o el barrido sin sentido.
        """
        for field in ("SLOT_MINUTES", "REMINDER_SWEEP_MINUTES", "REMINDER_CLAIM_MINUTES"):
            if getattr(self, field) <= 0:
                raise ValueError(f"{field} debe ser mayor que 0")
        for field in ("CANCELLATION_WINDOW_HOURS", "REMINDER_LEAD_HOURS"):
            if getattr(self, field) < 0:
                raise ValueError(f"{field} no puede ser negativo")


settings = Settings()

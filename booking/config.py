# booking/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ===== App =====
    APP_NAME: str = "booking"
    ENV: str = "dev"
    # TZ de la agenda: "ahora" se calcula aquí y se compara contra horas de pared
    TIMEZONE: str = "UTC"

    # ===== DB =====
    # En producción define DATABASE_URL con tu Postgres. Local puede caer a SQLite.
    DATABASE_URL: str = "sqlite:///./booking.db"

    # Opciones de pool (sólo aplican fuera de SQLite)
    DB_POOL_SIZE: int = 2
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 min

    # ===== Horario por defecto =====
    # Se usa sólo para sembrar la fila de working hours si no existe
    DEFAULT_DAY_START: str = "09:00"
    DEFAULT_DAY_END: str = "17:00"
    DEFAULT_BREAK_START: str = "12:00"
    DEFAULT_BREAK_END: str = "13:00"
    DEFAULT_SLOT_MINUTES: int = 60

    # ===== Twilio (SMS) =====
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_SMS_FROM: Optional[str] = None

    # Simulación (True = no envía mensajes reales)
    DRY_RUN: bool = False

    # ===== Jobs =====
    SCHEDULER_ENABLED: bool = True
    PROMOTION_INTERVAL_MIN: int = 5
    REMINDER_HOURS: int = 24

    # ===== Admin =====
    ADMIN_TOKEN: Optional[str] = None


settings = Settings()

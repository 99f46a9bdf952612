import os
from datetime import datetime

import pytz
from dotenv import load_dotenv


load_dotenv()


def _get_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL_IS_SET = "DATABASE_URL" in os.environ
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_scheduling.db")

CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "America/Mexico_City")
CLINIC_OPEN_TIME = os.getenv("CLINIC_OPEN_TIME", "08:00")
CLINIC_CLOSE_TIME = os.getenv("CLINIC_CLOSE_TIME", "19:00")
MIN_WINDOW_MINUTES = int(os.getenv("MIN_WINDOW_MINUTES", "30"))
SLOT_INCREMENT_MINUTES = int(os.getenv("SLOT_INCREMENT_MINUTES", "30"))

BOOKING_LOCK_TIMEOUT_SECONDS = float(os.getenv("BOOKING_LOCK_TIMEOUT_SECONDS", "5"))
BOOKING_RETRY_BACKOFF_SECONDS = float(os.getenv("BOOKING_RETRY_BACKOFF_SECONDS", "0.25"))
SCHEDULE_CONFLICT_HORIZON_DAYS = int(os.getenv("SCHEDULE_CONFLICT_HORIZON_DAYS", "90"))

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:4200"))


def validate_runtime_config() -> None:
    try:
        pytz.timezone(CLINIC_TIMEZONE)
    except pytz.UnknownTimeZoneError as exc:
        raise RuntimeError(f"CLINIC_TIMEZONE '{CLINIC_TIMEZONE}' is not a known timezone.") from exc

    try:
        open_time = datetime.strptime(CLINIC_OPEN_TIME, "%H:%M").time()
        close_time = datetime.strptime(CLINIC_CLOSE_TIME, "%H:%M").time()
    except ValueError as exc:
        raise RuntimeError("CLINIC_OPEN_TIME and CLINIC_CLOSE_TIME must use HH:MM.") from exc

    if open_time >= close_time:
        raise RuntimeError("CLINIC_OPEN_TIME must be earlier than CLINIC_CLOSE_TIME.")

    for name, value in (
        ("MIN_WINDOW_MINUTES", MIN_WINDOW_MINUTES),
        ("SLOT_INCREMENT_MINUTES", SLOT_INCREMENT_MINUTES),
        ("SCHEDULE_CONFLICT_HORIZON_DAYS", SCHEDULE_CONFLICT_HORIZON_DAYS),
        ("BOOKING_LOCK_TIMEOUT_SECONDS", BOOKING_LOCK_TIMEOUT_SECONDS),
    ):
        if value <= 0:
            raise RuntimeError(f"{name} must be positive.")

    if APP_ENV.lower() == "production" and not DATABASE_URL_IS_SET:
        raise RuntimeError("DATABASE_URL must be set in production.")

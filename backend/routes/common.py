import math

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.errors import SchedulingError
from backend.database import ensure_appointment_schema, ensure_schedule_schema


DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'

HTTP_STATUS_BY_KIND = {
    'validation_error': status.HTTP_400_BAD_REQUEST,
    'invalid_input': status.HTTP_400_BAD_REQUEST,
    'invalid_window': status.HTTP_400_BAD_REQUEST,
    'outside_availability': status.HTTP_409_CONFLICT,
    'slot_conflict': status.HTTP_409_CONFLICT,
    'illegal_transition': status.HTTP_409_CONFLICT,
    'contended_slot': status.HTTP_503_SERVICE_UNAVAILABLE,
    'appointment_not_found': status.HTTP_404_NOT_FOUND,
}


def to_http_exception(error: SchedulingError) -> HTTPException:
    status_code = HTTP_STATUS_BY_KIND.get(error.kind, status.HTTP_400_BAD_REQUEST)
    headers = None
    if error.retryable:
        headers = {'Retry-After': str(max(1, math.ceil(config.BOOKING_RETRY_BACKOFF_SECONDS)))}
    return HTTPException(status_code=status_code, detail=error.to_dict(), headers=headers)


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import SchedulingError
from backend.database import get_db
from backend.routes.common import database_unavailable, ensure_database_ready, to_http_exception
from backend.scheduling import availability, booking
from backend.scheduling.local_time import WEEKDAYS, parse_weekday

router = APIRouter(tags=['schedules'])

MAX_WINDOW_NOTES_LENGTH = 200


class DayWindowRequest(BaseModel):
    is_available: bool
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_time(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_WINDOW_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_WINDOW_NOTES_LENGTH} characters or fewer.')

        return normalized


class SetDayWindowRequest(DayWindowRequest):
    updated_by: str

    @field_validator('updated_by')
    @classmethod
    def validate_updated_by(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('updated_by is required.')
        return normalized


class SetScheduleRequest(BaseModel):
    updated_by: str
    days: dict[str, DayWindowRequest]

    @field_validator('updated_by')
    @classmethod
    def validate_updated_by(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('updated_by is required.')
        return normalized

    @field_validator('days')
    @classmethod
    def validate_days(cls, value: dict[str, DayWindowRequest]) -> dict[str, DayWindowRequest]:
        if not value:
            raise ValueError('At least one day is required.')
        return {key.strip().lower(): window for key, window in value.items()}


class ScheduleConflictPreviewRequest(BaseModel):
    days: dict[str, DayWindowRequest]


class DayWindowResponse(BaseModel):
    weekday: str
    is_available: bool
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = None


class ScheduleResponse(BaseModel):
    provider_id: str
    version: int
    updated_by: str | None = None
    updated_at: datetime | None = None
    days: list[DayWindowResponse]


class ScheduleConflictResponse(BaseModel):
    appointment_id: int
    date: str
    time: str
    duration_minutes: int
    reason: str


class SlotResponse(BaseModel):
    date: str
    time: str
    start_time: datetime
    end_time: datetime
    available: bool
    reason: str | None = None


def to_day_window(data: DayWindowRequest) -> availability.DayWindow:
    return availability.build_window(data.is_available, data.start_time, data.end_time, data.notes)


def serialize_schedule(provider_id: str, db: Session) -> ScheduleResponse:
    record = availability.get_schedule_record(db, provider_id)
    windows = availability.get_schedule(db, provider_id)

    return ScheduleResponse(
        provider_id=provider_id,
        version=record.version if record else 0,
        updated_by=record.updated_by if record else None,
        updated_at=record.updated_at if record else None,
        days=[
            DayWindowResponse(weekday=weekday.value, **windows[weekday].to_dict())
            for weekday in WEEKDAYS
        ],
    )


@router.get('/providers/{provider_id}/schedule', response_model=ScheduleResponse)
def get_provider_schedule(provider_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return serialize_schedule(provider_id, db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/providers/{provider_id}/schedule', response_model=ScheduleResponse)
def save_provider_schedule(provider_id: str, data: SetScheduleRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        booking.get_active_provider(db, provider_id)
        windows = {parse_weekday(weekday): to_day_window(window) for weekday, window in data.days.items()}
        availability.set_schedule(db, provider_id, windows, data.updated_by)
        return serialize_schedule(provider_id, db)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/providers/{provider_id}/schedule/{weekday}', response_model=DayWindowResponse)
def set_provider_day_window(
    provider_id: str,
    weekday: str,
    data: SetDayWindowRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        booking.get_active_provider(db, provider_id)
        parsed_weekday = parse_weekday(weekday)
        window = availability.set_window(db, provider_id, parsed_weekday, to_day_window(data), data.updated_by)
        return DayWindowResponse(weekday=parsed_weekday.value, **window.to_dict())
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/providers/{provider_id}/schedule/conflicts', response_model=list[ScheduleConflictResponse])
def preview_schedule_conflicts(
    provider_id: str,
    data: ScheduleConflictPreviewRequest,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        proposed = {weekday: to_day_window(window) for weekday, window in data.days.items()}
        conflicts = availability.find_schedule_conflicts(db, provider_id, proposed)
        return [ScheduleConflictResponse(**conflict.to_dict()) for conflict in conflicts]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/providers/{provider_id}/slots', response_model=list[SlotResponse])
def list_provider_slots(
    provider_id: str,
    date: str = Query(...),
    duration_minutes: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slots = booking.list_available_slots(db, provider_id, date, duration_minutes)
        return [SlotResponse(**slot) for slot in slots]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

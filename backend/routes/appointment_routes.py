from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import SchedulingError
from backend.database import get_db
from backend.models.appointment import Appointment
from backend.routes.common import database_unavailable, ensure_database_ready, to_http_exception
from backend.scheduling import booking
from backend.scheduling.local_time import describe_instant, to_instant
from backend.scheduling.status import INITIAL_STATUSES, AppointmentStatus, AppointmentType

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600
MAX_DETAILS_LENGTH = 600


def _required(value: str, label: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f'{label} is required.')
    return normalized


def _optional_text(value: str | None, max_length: int, label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'{label} must be {max_length} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    provider_id: str
    patient_id: str
    date: str
    time: str
    duration_minutes: int
    appointment_type: str = AppointmentType.CONSULTATION.value
    status: str = AppointmentStatus.SCHEDULED.value
    performed_by: str | None = None
    notes: str | None = None

    @field_validator('provider_id')
    @classmethod
    def validate_provider_id(cls, value: str) -> str:
        return _required(value, 'Provider')

    @field_validator('patient_id')
    @classmethod
    def validate_patient_id(cls, value: str) -> str:
        return _required(value, 'Patient')

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {appointment_type.value for appointment_type in AppointmentType}:
            raise ValueError('Invalid appointment type.')
        return normalized

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {initial_status.value for initial_status in INITIAL_STATUSES}:
            raise ValueError("New appointments must start as 'inquiry' or 'scheduled'.")
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _optional_text(value, MAX_APPOINTMENT_NOTES_LENGTH, 'Notes')


class TransitionRequest(BaseModel):
    status: str
    performed_by: str
    details: str | None = None

    @field_validator('status')
    @classmethod
    def normalize_status(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('performed_by')
    @classmethod
    def validate_performed_by(cls, value: str) -> str:
        return _required(value, 'performed_by')

    @field_validator('details')
    @classmethod
    def validate_details(cls, value: str | None) -> str | None:
        return _optional_text(value, MAX_DETAILS_LENGTH, 'Details')


class RescheduleRequest(BaseModel):
    date: str
    time: str
    performed_by: str
    duration_minutes: int | None = None
    details: str | None = None

    @field_validator('performed_by')
    @classmethod
    def validate_performed_by(cls, value: str) -> str:
        return _required(value, 'performed_by')

    @field_validator('details')
    @classmethod
    def validate_details(cls, value: str | None) -> str | None:
        return _optional_text(value, MAX_DETAILS_LENGTH, 'Details')


class HistoryEntryResponse(BaseModel):
    previous_status: str | None = None
    new_status: str
    performed_by: str
    performed_at: datetime
    details: str | None = None

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    provider_id: str
    patient_id: str
    date: str
    time: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: str
    appointment_type: str | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    history: list[HistoryEntryResponse] = []


class SlotCheckResponse(BaseModel):
    available: bool
    reason: str | None = None
    kind: str | None = None


def serialize_appointment(appointment: Appointment, include_history: bool = True) -> AppointmentResponse:
    local = describe_instant(appointment.start_time)

    return AppointmentResponse(
        id=appointment.id,
        provider_id=appointment.provider_id,
        patient_id=appointment.patient_id,
        date=local['date'],
        time=local['time'],
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        duration_minutes=appointment.duration_minutes,
        status=appointment.status,
        appointment_type=appointment.appointment_type,
        notes=appointment.notes,
        created_by=appointment.created_by,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
        completed_at=appointment.completed_at,
        history=[HistoryEntryResponse.model_validate(entry) for entry in appointment.history] if include_history else [],
    )


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = booking.request_booking(
            db,
            provider_id=data.provider_id,
            patient_id=data.patient_id,
            start=to_instant(data.date, data.time),
            duration_minutes=data.duration_minutes,
            appointment_type=data.appointment_type,
            requested_status=data.status,
            performed_by=data.performed_by,
            notes=data.notes,
        )
        return serialize_appointment(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    provider_id: str = Query(...),
    date: str = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = booking.get_provider_day_appointments(db, provider_id.strip(), date)
        return [serialize_appointment(appointment, include_history=False) for appointment in appointments]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/appointments/check-slot', response_model=SlotCheckResponse)
def check_appointment_slot(
    provider_id: str = Query(...),
    date: str = Query(...),
    time: str = Query(...),
    duration_minutes: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        result = booking.check_slot(db, provider_id, to_instant(date, time), duration_minutes)
        return SlotCheckResponse(**result.to_dict())
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/appointments/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return serialize_appointment(booking.get_appointment(db, appointment_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/appointments/{appointment_id}/transitions', response_model=AppointmentResponse)
def transition_appointment(appointment_id: int, data: TransitionRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = booking.transition_appointment(
            db,
            appointment_id,
            data.status,
            performed_by=data.performed_by,
            details=data.details,
        )
        return serialize_appointment(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/appointments/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(appointment_id: int, data: RescheduleRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = booking.reschedule_appointment(
            db,
            appointment_id,
            to_instant(data.date, data.time),
            performed_by=data.performed_by,
            duration_minutes=data.duration_minutes,
            details=data.details,
        )
        return serialize_appointment(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

"""
Booking Orchestrator

Public entry point of the scheduling core. Requests are validated, then the
availability check, the conflict check and the insert run as one unit while
the provider's lock is held:

1. in-process mutex per provider (bounded wait, ContendedSlotError on timeout)
2. row lock on the provider's schedule where the database supports it
3. partial unique index on (provider_id, start_time) for reserving statuses

A lock timeout is retried once automatically after a short backoff.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import (
    AppointmentNotFoundError,
    ContendedSlotError,
    OutsideAvailabilityError,
    SlotConflictError,
    ValidationError,
)
from backend.models.appointment import Appointment
from backend.models.schedule import ProviderSchedule
from backend.models.user import PROVIDER_ROLE, User
from backend.scheduling import availability, conflicts, lifecycle
from backend.scheduling.local_time import (
    describe_instant,
    ensure_instant,
    local_day_bounds,
    parse_date,
    to_instant,
    to_local,
    weekday_of,
)
from backend.scheduling.locks import provider_locks, resolve_lock_timeout, retry_on_contention
from backend.scheduling.status import INITIAL_STATUSES, AppointmentStatus, AppointmentType


logger = logging.getLogger(__name__)

PUBLIC_INTAKE_ACTOR = 'public_booking_form'
SYSTEM_ACTOR = 'system'


@dataclass(frozen=True)
class SlotCheck:
    available: bool
    reason: str | None = None
    kind: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _require_text(value: str | None, field: str) -> str:
    normalized = (value or '').strip()
    if not normalized:
        raise ValidationError(f'{field} is required.', field=field)
    return normalized


def _require_duration(duration_minutes) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or duration_minutes <= 0:
        raise ValidationError('Duration must be a positive number of minutes.', field='duration_minutes')
    return duration_minutes


def get_active_provider(db: Session, provider_id: str) -> User:
    provider = db.get(User, provider_id)
    if provider is None or provider.role != PROVIDER_ROLE or not provider.is_active:
        raise ValidationError(f"'{provider_id}' is not an active provider.", field='provider_id')
    return provider


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise AppointmentNotFoundError('Appointment not found.', appointment_id=appointment_id)
    return appointment


def get_provider_day_appointments(db: Session, provider_id: str, day: str | date) -> list[Appointment]:
    """All appointments of one provider touching one clinic-local calendar day."""
    day_start, day_end = local_day_bounds(day)
    return db.query(Appointment).filter(
        Appointment.provider_id == provider_id,
        Appointment.start_time < day_end,
        Appointment.end_time > day_start,
    ).order_by(Appointment.start_time.asc()).all()


def _lock_provider_row(db: Session, provider_id: str) -> None:
    try:
        db.query(ProviderSchedule).filter(
            ProviderSchedule.provider_id == provider_id,
        ).with_for_update(nowait=True).first()
    except OperationalError as exc:
        db.rollback()
        logger.info('Schedule row for provider %s is locked by another transaction', provider_id)
        raise ContendedSlotError(
            'Another request is booking with this provider. Please retry.',
            lock_key=provider_id,
        ) from exc


def _ensure_bookable(
    db: Session,
    provider_id: str,
    start: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
    existing: list[Appointment] | None = None,
) -> None:
    check = availability.evaluate_availability(db, provider_id, start, duration_minutes)
    if not check.ok:
        raise OutsideAvailabilityError(
            check.reason,
            weekday=check.weekday.value,
            window=check.window.to_dict(),
        )

    if existing is None:
        day, _ = to_local(start)
        existing = get_provider_day_appointments(db, provider_id, day)

    conflict = conflicts.find_conflict(
        provider_id,
        start,
        duration_minutes,
        existing,
        exclude_appointment_id=exclude_appointment_id,
    )
    if conflict is not None:
        interval = conflicts.appointment_interval(conflict)
        raise SlotConflictError(
            'The provider already has an appointment at that time.',
            conflicting_start=interval.start.isoformat(),
            conflicting_end=interval.end.isoformat(),
        )


def check_slot(
    db: Session,
    provider_id: str,
    start: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> SlotCheck:
    """Read-only pre-check using the same rules as request_booking."""
    try:
        provider_id = _require_text(provider_id, 'provider_id')
        duration_minutes = _require_duration(duration_minutes)
        get_active_provider(db, provider_id)
        _ensure_bookable(db, provider_id, ensure_instant(start), duration_minutes, exclude_appointment_id)
    except (ValidationError, OutsideAvailabilityError, SlotConflictError) as exc:
        return SlotCheck(available=False, reason=exc.message, kind=exc.kind)

    return SlotCheck(available=True)


def request_booking(
    db: Session,
    provider_id: str,
    patient_id: str,
    start: datetime,
    duration_minutes: int,
    appointment_type: str | AppointmentType = AppointmentType.CONSULTATION,
    requested_status: str | AppointmentStatus = AppointmentStatus.SCHEDULED,
    performed_by: str | None = None,
    notes: str | None = None,
    lock_timeout: float | None = None,
) -> Appointment:
    provider_id = _require_text(provider_id, 'provider_id')
    patient_id = _require_text(patient_id, 'patient_id')
    duration_minutes = _require_duration(duration_minutes)
    appointment_type = lifecycle.parse_appointment_type(appointment_type)
    status = lifecycle.parse_status(requested_status)
    if status not in INITIAL_STATUSES:
        raise ValidationError(
            f"New appointments must start as 'inquiry' or 'scheduled', not '{status.value}'.",
            field='status',
        )

    start = ensure_instant(start)
    default_actor = PUBLIC_INTAKE_ACTOR if status == AppointmentStatus.INQUIRY else SYSTEM_ACTOR
    performed_by = (performed_by or '').strip() or default_actor
    get_active_provider(db, provider_id)

    for attempt in retry_on_contention():
        with attempt:
            return _book(
                db,
                provider_id,
                patient_id,
                start,
                duration_minutes,
                appointment_type,
                status,
                performed_by,
                notes,
                resolve_lock_timeout(lock_timeout),
            )


def _book(
    db: Session,
    provider_id: str,
    patient_id: str,
    start: datetime,
    duration_minutes: int,
    appointment_type: AppointmentType,
    status: AppointmentStatus,
    performed_by: str,
    notes: str | None,
    lock_timeout: float,
) -> Appointment:
    with provider_locks.hold(provider_id, lock_timeout):
        try:
            _lock_provider_row(db, provider_id)
            _ensure_bookable(db, provider_id, start, duration_minutes)
            appointment = lifecycle.new_appointment(
                provider_id=provider_id,
                patient_id=patient_id,
                start=start,
                duration_minutes=duration_minutes,
                appointment_type=appointment_type,
                status=status,
                performed_by=performed_by,
                notes=notes,
            )
            db.add(appointment)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise SlotConflictError(
                'The provider already has an appointment starting at that time.',
                conflicting_start=start.isoformat(),
                conflicting_end=(start + timedelta(minutes=duration_minutes)).isoformat(),
            ) from exc
        except Exception:
            db.rollback()
            raise

    db.refresh(appointment)
    logger.info(
        'Booked appointment %s with provider %s at %s as %s',
        appointment.id,
        provider_id,
        start.isoformat(),
        status.value,
    )
    return appointment


def transition_appointment(
    db: Session,
    appointment_id: int,
    new_status: str | AppointmentStatus,
    performed_by: str,
    details: str | None = None,
    lock_timeout: float | None = None,
) -> Appointment:
    requested = lifecycle.parse_status(new_status)
    performed_by = _require_text(performed_by, 'performed_by')
    appointment = get_appointment(db, appointment_id)
    lifecycle.ensure_transition_allowed(appointment.status, requested)

    for attempt in retry_on_contention():
        with attempt:
            return _transition(db, appointment, requested, performed_by, details, resolve_lock_timeout(lock_timeout))


def _transition(
    db: Session,
    appointment: Appointment,
    requested: AppointmentStatus,
    performed_by: str,
    details: str | None,
    lock_timeout: float,
) -> Appointment:
    provider_id = appointment.provider_id

    with provider_locks.hold(provider_id, lock_timeout):
        try:
            _lock_provider_row(db, provider_id)
            db.refresh(appointment)
            previous = appointment.status
            if lifecycle.requires_reservation(appointment.status, requested):
                _ensure_bookable(
                    db,
                    provider_id,
                    appointment.start_time,
                    appointment.duration_minutes,
                    exclude_appointment_id=appointment.id,
                )
            lifecycle.apply_transition(appointment, requested, performed_by, details)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise SlotConflictError(
                'The provider already has an appointment starting at that time.',
                conflicting_start=ensure_instant(appointment.start_time).isoformat(),
                conflicting_end=ensure_instant(appointment.end_time).isoformat(),
            ) from exc
        except Exception:
            db.rollback()
            raise

    db.refresh(appointment)
    logger.info('Appointment %s moved from %s to %s by %s', appointment.id, previous, requested.value, performed_by)
    return appointment


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    start: datetime,
    performed_by: str,
    duration_minutes: int | None = None,
    details: str | None = None,
    lock_timeout: float | None = None,
) -> Appointment:
    performed_by = _require_text(performed_by, 'performed_by')
    appointment = get_appointment(db, appointment_id)
    if duration_minutes is None:
        duration_minutes = appointment.duration_minutes
    duration_minutes = _require_duration(duration_minutes)
    start = ensure_instant(start)

    for attempt in retry_on_contention():
        with attempt:
            return _reschedule(db, appointment, start, duration_minutes, performed_by, details, resolve_lock_timeout(lock_timeout))


def _reschedule(
    db: Session,
    appointment: Appointment,
    start: datetime,
    duration_minutes: int,
    performed_by: str,
    details: str | None,
    lock_timeout: float,
) -> Appointment:
    provider_id = appointment.provider_id

    with provider_locks.hold(provider_id, lock_timeout):
        try:
            _lock_provider_row(db, provider_id)
            db.refresh(appointment)
            if lifecycle.is_terminal(appointment.status):
                raise ValidationError(
                    f"Appointments in '{appointment.status}' cannot be rescheduled.",
                    field='status',
                )

            _ensure_bookable(db, provider_id, start, duration_minutes, exclude_appointment_id=appointment.id)

            previous = describe_instant(appointment.start_time)
            current = describe_instant(start)
            status = lifecycle.parse_status(appointment.status)
            now = datetime.now(timezone.utc)

            appointment.start_time = start
            appointment.end_time = start + timedelta(minutes=duration_minutes)
            appointment.duration_minutes = duration_minutes
            appointment.updated_at = now
            lifecycle.record_history(
                appointment,
                status,
                status,
                performed_by,
                details or (
                    f"Rescheduled from {previous['date']} {previous['time']} "
                    f"to {current['date']} {current['time']}"
                ),
                now,
            )
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise SlotConflictError(
                'The provider already has an appointment starting at that time.',
                conflicting_start=start.isoformat(),
                conflicting_end=(start + timedelta(minutes=duration_minutes)).isoformat(),
            ) from exc
        except Exception:
            db.rollback()
            raise

    db.refresh(appointment)
    logger.info('Rescheduled appointment %s to %s', appointment.id, start.isoformat())
    return appointment


def list_available_slots(
    db: Session,
    provider_id: str,
    day: str | date,
    duration_minutes: int,
    step_minutes: int | None = None,
) -> list[dict]:
    """Candidate slots through the provider's window for one day, each checked like check_slot."""
    provider_id = _require_text(provider_id, 'provider_id')
    duration_minutes = _require_duration(duration_minutes)
    day = parse_date(day)
    step = timedelta(minutes=step_minutes or config.SLOT_INCREMENT_MINUTES)
    duration = timedelta(minutes=duration_minutes)
    get_active_provider(db, provider_id)

    window = availability.get_window(db, provider_id, weekday_of(day))
    if not window.is_available:
        return []

    existing = get_provider_day_appointments(db, provider_id, day)
    closing = to_instant(day, window.end)
    candidate = to_instant(day, window.start)
    slots: list[dict] = []

    while candidate + duration <= closing:
        try:
            _ensure_bookable(db, provider_id, candidate, duration_minutes, existing=existing)
            available, reason = True, None
        except (OutsideAvailabilityError, SlotConflictError) as exc:
            available, reason = False, exc.message

        local = describe_instant(candidate)
        slots.append({
            'date': local['date'],
            'time': local['time'],
            'start_time': candidate,
            'end_time': candidate + duration,
            'available': available,
            'reason': reason,
        })
        candidate += step

    return slots

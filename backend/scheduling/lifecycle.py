"""
Appointment Lifecycle

The transition table below is the only place that decides which status
changes are legal. Every applied change appends one immutable history entry.
"""

import logging
from datetime import datetime, timedelta, timezone

from backend.core.errors import IllegalTransitionError, ValidationError
from backend.models.appointment import Appointment, AppointmentStatusHistory
from backend.scheduling.local_time import ensure_instant
from backend.scheduling.status import (
    INITIAL_STATUSES,
    RESERVING_STATUSES,
    TERMINAL_STATUSES,
    AppointmentStatus,
    AppointmentType,
)


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.INQUIRY: frozenset({
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.IN_PROGRESS: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def parse_status(value: str | AppointmentStatus) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"'{value}' is not an appointment status.", field='status') from exc


def parse_appointment_type(value: str | AppointmentType) -> AppointmentType:
    if isinstance(value, AppointmentType):
        return value
    try:
        return AppointmentType(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"'{value}' is not an appointment type.", field='appointment_type') from exc


def is_terminal(status: str | AppointmentStatus) -> bool:
    return parse_status(status) in TERMINAL_STATUSES


def is_reserving(status: str | AppointmentStatus) -> bool:
    return parse_status(status) in RESERVING_STATUSES


def ensure_transition_allowed(current: str | AppointmentStatus, requested: str | AppointmentStatus) -> None:
    current = parse_status(current)
    requested = parse_status(requested)
    allowed = ALLOWED_TRANSITIONS[current]
    if requested not in allowed:
        logger.warning('Rejected appointment transition %s -> %s', current.value, requested.value)
        raise IllegalTransitionError(current.value, requested.value, [status.value for status in allowed])


def requires_reservation(current: str | AppointmentStatus, requested: str | AppointmentStatus) -> bool:
    """True when the change makes a non-reserving appointment occupy its slot."""
    return not is_reserving(current) and is_reserving(requested)


def record_history(
    appointment: Appointment,
    previous_status: AppointmentStatus | None,
    new_status: AppointmentStatus,
    performed_by: str,
    details: str | None,
    performed_at: datetime,
) -> AppointmentStatusHistory:
    entry = AppointmentStatusHistory(
        previous_status=previous_status.value if previous_status else None,
        new_status=new_status.value,
        performed_by=performed_by,
        performed_at=performed_at,
        details=details,
    )
    appointment.history.append(entry)
    return entry


def new_appointment(
    provider_id: str,
    patient_id: str,
    start: datetime,
    duration_minutes: int,
    appointment_type: AppointmentType,
    status: AppointmentStatus,
    performed_by: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    """Build an unsaved appointment together with its creation history entry."""
    if status not in INITIAL_STATUSES:
        raise ValidationError(
            f"New appointments must start as 'inquiry' or 'scheduled', not '{status.value}'.",
            field='status',
        )

    now = now or datetime.now(timezone.utc)
    start = ensure_instant(start)
    appointment = Appointment(
        provider_id=provider_id,
        patient_id=patient_id,
        start_time=start,
        end_time=start + timedelta(minutes=duration_minutes),
        duration_minutes=duration_minutes,
        status=status.value,
        appointment_type=appointment_type.value,
        notes=notes,
        created_by=performed_by,
        created_at=now,
        updated_at=now,
    )
    record_history(appointment, None, status, performed_by, f'Appointment created as {status.value}', now)
    return appointment


def apply_transition(
    appointment: Appointment,
    requested: str | AppointmentStatus,
    performed_by: str,
    details: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    current = parse_status(appointment.status)
    requested = parse_status(requested)
    ensure_transition_allowed(current, requested)

    now = now or datetime.now(timezone.utc)
    appointment.status = requested.value
    appointment.updated_at = now
    if requested == AppointmentStatus.COMPLETED:
        appointment.completed_at = now

    record_history(
        appointment,
        current,
        requested,
        performed_by,
        details or f'Status updated from {current.value} to {requested.value}',
        now,
    )
    return appointment

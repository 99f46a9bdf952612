"""Overlap detection between a proposed slot and a provider's appointments.

Intervals are half-open ``[start, end)``. Two intervals that only share an
endpoint are back-to-back and never conflict. Only appointments in a
reserving status (scheduled, confirmed, in_progress) are considered; the
caller supplies them, this module performs no queries.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from backend.scheduling.local_time import ensure_instant
from backend.scheduling.status import RESERVING_STATUSES, AppointmentStatus


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    @classmethod
    def from_duration(cls, start: datetime, duration_minutes: int) -> 'Interval':
        start = ensure_instant(start)
        return cls(start, start + timedelta(minutes=duration_minutes))


def appointment_interval(appointment) -> Interval:
    return Interval(ensure_instant(appointment.start_time), ensure_instant(appointment.end_time))


def is_reserving(appointment) -> bool:
    try:
        return AppointmentStatus(appointment.status) in RESERVING_STATUSES
    except ValueError:
        return False


def intervals_conflict(proposed: Interval, existing: Interval) -> bool:
    overlaps = proposed.start < existing.end and proposed.end > existing.start
    back_to_back = proposed.end == existing.start or proposed.start == existing.end
    return overlaps and not back_to_back


def find_conflict(
    provider_id: str,
    start: datetime,
    duration_minutes: int,
    existing_appointments: Iterable,
    exclude_appointment_id: int | None = None,
):
    """Return the first reserving appointment that overlaps the slot, or None."""
    proposed = Interval.from_duration(start, duration_minutes)

    for appointment in existing_appointments:
        if appointment.provider_id != provider_id:
            continue
        if exclude_appointment_id is not None and appointment.id == exclude_appointment_id:
            continue
        if not is_reserving(appointment):
            continue
        if intervals_conflict(proposed, appointment_interval(appointment)):
            return appointment

    return None


def has_conflict(
    provider_id: str,
    start: datetime,
    duration_minutes: int,
    existing_appointments: Iterable,
    exclude_appointment_id: int | None = None,
) -> bool:
    return find_conflict(
        provider_id,
        start,
        duration_minutes,
        existing_appointments,
        exclude_appointment_id=exclude_appointment_id,
    ) is not None

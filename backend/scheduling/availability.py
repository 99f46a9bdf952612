"""
Availability Model

Each provider has one recurring weekly schedule: for every day of the week
either "unavailable" or a single open interval inside the clinic-wide bounds.
A provider that never configured a schedule is unavailable every day.
"""

import logging
from contextlib import ExitStack
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.errors import ContendedSlotError, InvalidWindowError
from backend.models.appointment import Appointment
from backend.models.schedule import ProviderSchedule, ScheduleDayWindow
from backend.scheduling.local_time import (
    WEEKDAYS,
    Weekday,
    ensure_instant,
    format_time_of_day,
    parse_time_of_day,
    parse_weekday,
    to_local,
    weekday_of,
)
from backend.scheduling.locks import resolve_lock_timeout, retry_on_contention, schedule_locks
from backend.scheduling.status import RESERVING_STATUS_VALUES


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayWindow:
    is_available: bool = False
    start: time | None = None
    end: time | None = None
    notes: str | None = None

    def contains(self, start: time, end: time) -> bool:
        return self.is_available and self.start <= start and end <= self.end

    def describe(self) -> str:
        if not self.is_available:
            return 'unavailable'
        return f'{format_time_of_day(self.start)}-{format_time_of_day(self.end)}'

    def to_dict(self) -> dict:
        return {
            'is_available': self.is_available,
            'start_time': format_time_of_day(self.start) if self.start else None,
            'end_time': format_time_of_day(self.end) if self.end else None,
            'notes': self.notes,
        }


UNAVAILABLE = DayWindow()


@dataclass(frozen=True)
class AvailabilityCheck:
    ok: bool
    weekday: Weekday
    window: DayWindow
    reason: str | None = None


@dataclass(frozen=True)
class ScheduleConflict:
    appointment_id: int
    date: str
    time: str
    duration_minutes: int
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)


def clinic_bounds() -> tuple[time, time]:
    return parse_time_of_day(config.CLINIC_OPEN_TIME), parse_time_of_day(config.CLINIC_CLOSE_TIME)


def build_window(
    is_available: bool,
    start_time: str | time | None = None,
    end_time: str | time | None = None,
    notes: str | None = None,
) -> DayWindow:
    return DayWindow(
        is_available=bool(is_available),
        start=parse_time_of_day(start_time) if start_time is not None else None,
        end=parse_time_of_day(end_time) if end_time is not None else None,
        notes=notes,
    )


def validate_window(window: DayWindow, weekday: Weekday | None = None) -> None:
    if not window.is_available:
        return

    day_label = weekday.value if weekday else 'this day'
    context = {'weekday': weekday.value} if weekday else {}

    if window.start is None or window.end is None:
        raise InvalidWindowError(f'An available {day_label} needs both a start and an end time.', **context)

    if window.start >= window.end:
        raise InvalidWindowError(f'Start time must be earlier than end time on {day_label}.', **context)

    open_time, close_time = clinic_bounds()
    if window.start < open_time or window.end > close_time:
        raise InvalidWindowError(
            f'Hours on {day_label} must fall between {format_time_of_day(open_time)} '
            f'and {format_time_of_day(close_time)}.',
            **context,
        )

    length = (
        datetime.combine(date.min, window.end) - datetime.combine(date.min, window.start)
    ) // timedelta(minutes=1)
    if length < config.MIN_WINDOW_MINUTES:
        raise InvalidWindowError(
            f'Open hours on {day_label} must last at least {config.MIN_WINDOW_MINUTES} minutes.',
            **context,
        )


def _window_from_record(record: ScheduleDayWindow) -> DayWindow:
    return DayWindow(
        is_available=bool(record.is_available),
        start=record.start_time,
        end=record.end_time,
        notes=record.notes,
    )


def get_schedule_record(db: Session, provider_id: str) -> ProviderSchedule | None:
    return db.get(ProviderSchedule, provider_id)


def get_schedule(db: Session, provider_id: str) -> dict[Weekday, DayWindow]:
    windows = {weekday: UNAVAILABLE for weekday in WEEKDAYS}
    record = get_schedule_record(db, provider_id)
    if record is not None:
        for day_window in record.day_windows:
            windows[Weekday(day_window.weekday)] = _window_from_record(day_window)
    return windows


def get_window(db: Session, provider_id: str, weekday: str | Weekday) -> DayWindow:
    weekday = parse_weekday(weekday)
    record = db.query(ScheduleDayWindow).filter(
        ScheduleDayWindow.provider_id == provider_id,
        ScheduleDayWindow.weekday == weekday.value,
    ).first()
    if record is None:
        return UNAVAILABLE
    return _window_from_record(record)


def _get_or_create_schedule(db: Session, provider_id: str, updated_by: str) -> ProviderSchedule:
    schedule = get_schedule_record(db, provider_id)
    if schedule is None:
        schedule = ProviderSchedule(provider_id=provider_id, version=0, created_by=updated_by)
        db.add(schedule)
    return schedule


def _write_window(schedule: ProviderSchedule, weekday: Weekday, window: DayWindow) -> None:
    record = next((item for item in schedule.day_windows if item.weekday == weekday.value), None)
    if record is None:
        record = ScheduleDayWindow(provider_id=schedule.provider_id, weekday=weekday.value)
        schedule.day_windows.append(record)

    record.is_available = window.is_available
    record.start_time = window.start
    record.end_time = window.end
    record.notes = window.notes


def _touch(schedule: ProviderSchedule, updated_by: str) -> None:
    if schedule.version:
        schedule.version = ProviderSchedule.version + 1
    else:
        schedule.version = 1
    schedule.updated_by = updated_by
    schedule.updated_at = datetime.now(timezone.utc)


def _save_windows(
    db: Session,
    provider_id: str,
    windows: dict[Weekday, DayWindow],
    updated_by: str,
    lock_timeout: float | None,
) -> None:
    for attempt in retry_on_contention():
        with attempt:
            _write_windows(db, provider_id, windows, updated_by, resolve_lock_timeout(lock_timeout))


def _write_windows(
    db: Session,
    provider_id: str,
    windows: dict[Weekday, DayWindow],
    updated_by: str,
    timeout: float,
) -> None:
    with ExitStack() as stack:
        for weekday in sorted(windows, key=WEEKDAYS.index):
            stack.enter_context(schedule_locks.hold((provider_id, weekday.value), timeout))

        try:
            schedule = _get_or_create_schedule(db, provider_id, updated_by)
            for weekday, window in windows.items():
                _write_window(schedule, weekday, window)
            _touch(schedule, updated_by)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ContendedSlotError(
                'The schedule was changed concurrently. Please retry.',
                lock_key=provider_id,
            ) from exc
        except Exception:
            db.rollback()
            raise


def set_window(
    db: Session,
    provider_id: str,
    weekday: str | Weekday,
    window: DayWindow,
    updated_by: str,
    lock_timeout: float | None = None,
) -> DayWindow:
    weekday = parse_weekday(weekday)
    validate_window(window, weekday)
    _save_windows(db, provider_id, {weekday: window}, updated_by, lock_timeout)
    logger.info('Set %s window for provider %s to %s', weekday.value, provider_id, window.describe())
    return window


def set_schedule(
    db: Session,
    provider_id: str,
    windows: Mapping[str | Weekday, DayWindow],
    updated_by: str,
    lock_timeout: float | None = None,
) -> dict[Weekday, DayWindow]:
    """Overwrite the supplied weekdays in one transaction. Other days stay as they are."""
    parsed = {parse_weekday(weekday): window for weekday, window in windows.items()}
    for weekday, window in parsed.items():
        validate_window(window, weekday)

    _save_windows(db, provider_id, parsed, updated_by, lock_timeout)
    logger.info('Saved %d day window(s) for provider %s', len(parsed), provider_id)
    return get_schedule(db, provider_id)


def evaluate_availability(
    db: Session,
    provider_id: str,
    start: datetime,
    duration_minutes: int,
) -> AvailabilityCheck:
    start = ensure_instant(start)
    end = start + timedelta(minutes=duration_minutes)
    start_day, start_time = to_local(start)
    end_day, end_time = to_local(end)
    weekday = weekday_of(start_day)
    window = get_window(db, provider_id, weekday)

    if not window.is_available:
        return AvailabilityCheck(False, weekday, window, f'The provider is not available on {weekday.value}.')

    if end_day != start_day:
        return AvailabilityCheck(False, weekday, window, 'Appointments cannot continue past midnight.')

    if not window.contains(start_time, end_time):
        return AvailabilityCheck(
            False,
            weekday,
            window,
            f'{format_time_of_day(start_time)}-{format_time_of_day(end_time)} is outside the provider\'s '
            f'hours on {weekday.value} ({window.describe()}).',
        )

    return AvailabilityCheck(True, weekday, window)


def is_within_availability(db: Session, provider_id: str, start: datetime, duration_minutes: int) -> bool:
    return evaluate_availability(db, provider_id, start, duration_minutes).ok


def find_schedule_conflicts(
    db: Session,
    provider_id: str,
    proposed: Mapping[str | Weekday, DayWindow],
    now: datetime | None = None,
) -> list[ScheduleConflict]:
    """List booked appointments that the proposed schedule would leave outside open hours."""
    parsed = {parse_weekday(weekday): window for weekday, window in proposed.items()}
    for weekday, window in parsed.items():
        validate_window(window, weekday)

    merged = {**get_schedule(db, provider_id), **parsed}
    now = ensure_instant(now or datetime.now(timezone.utc))
    horizon = now + timedelta(days=config.SCHEDULE_CONFLICT_HORIZON_DAYS)

    appointments = db.query(Appointment).filter(
        Appointment.provider_id == provider_id,
        Appointment.status.in_(RESERVING_STATUS_VALUES),
        Appointment.start_time >= now,
        Appointment.start_time < horizon,
    ).order_by(Appointment.start_time.asc()).all()

    conflicts: list[ScheduleConflict] = []
    for appointment in appointments:
        start_day, start_time = to_local(appointment.start_time)
        end_day, end_time = to_local(appointment.end_time)
        weekday = weekday_of(start_day)
        window = merged[weekday]

        if not window.is_available:
            reason = f'{weekday.value.capitalize()} is no longer available.'
        elif end_day != start_day or not window.contains(start_time, end_time):
            reason = f'Appointment falls outside the new hours ({window.describe()}).'
        else:
            continue

        conflicts.append(
            ScheduleConflict(
                appointment_id=appointment.id,
                date=start_day.isoformat(),
                time=format_time_of_day(start_time),
                duration_minutes=appointment.duration_minutes,
                reason=reason,
            )
        )

    return conflicts

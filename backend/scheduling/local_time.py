"""Conversion between clinic wall-clock values and absolute instants.

An instant is a timezone-aware UTC ``datetime`` truncated to the minute.
Wall-clock input is always read in the clinic timezone, never in the host's,
and both directions use the same rule: split into components, rebuild from
components.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

import pytz

from backend.core import config
from backend.core.errors import InvalidInputError


TIME_OF_DAY_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])$')
DATE_FORMAT = '%Y-%m-%d'


class Weekday(str, Enum):
    MONDAY = 'monday'
    TUESDAY = 'tuesday'
    WEDNESDAY = 'wednesday'
    THURSDAY = 'thursday'
    FRIDAY = 'friday'
    SATURDAY = 'saturday'
    SUNDAY = 'sunday'


# Indexed by date.weekday(), Monday first.
WEEKDAYS = tuple(Weekday)


def clinic_timezone():
    return pytz.timezone(config.CLINIC_TIMEZONE)


def parse_weekday(value: str | Weekday) -> Weekday:
    if isinstance(value, Weekday):
        return value
    try:
        return Weekday(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidInputError(f"'{value}' is not a day of the week.", value=str(value)) from exc


def weekday_of(day: date) -> Weekday:
    return WEEKDAYS[day.weekday()]


def parse_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), DATE_FORMAT).date()
    except ValueError as exc:
        raise InvalidInputError(f"'{value}' is not a valid date (expected YYYY-MM-DD).", value=str(value)) from exc


def parse_time_of_day(value: str | time) -> time:
    if isinstance(value, time):
        return time(value.hour, value.minute)
    match = TIME_OF_DAY_PATTERN.match(str(value).strip())
    if not match:
        raise InvalidInputError(f"'{value}' is not a valid time (expected HH:MM).", value=str(value))
    return time(int(match.group(1)), int(match.group(2)))


def format_time_of_day(value: time) -> str:
    return f'{value.hour:02d}:{value.minute:02d}'


def to_instant(day: str | date, time_of_day: str | time) -> datetime:
    """Return the instant a clinic clock reads as ``day`` ``time_of_day``.

    Wall-clock times skipped by a daylight-saving jump do not exist and are
    rejected. Repeated times resolve to their first occurrence.
    """
    day = parse_date(day)
    time_of_day = parse_time_of_day(time_of_day)
    tz = clinic_timezone()
    naive = datetime(day.year, day.month, day.day, time_of_day.hour, time_of_day.minute)

    try:
        localized = tz.localize(naive, is_dst=None)
    except pytz.NonExistentTimeError as exc:
        raise InvalidInputError(
            f'{day.isoformat()} {format_time_of_day(time_of_day)} does not exist in {tz.zone}.',
            value=f'{day.isoformat()} {format_time_of_day(time_of_day)}',
        ) from exc
    except pytz.AmbiguousTimeError:
        localized = tz.localize(naive, is_dst=True)

    return localized.astimezone(timezone.utc)


def to_local(instant: datetime) -> tuple[date, time]:
    """Return the (date, time-of-day) a clinic clock shows at ``instant``."""
    local = ensure_instant(instant).astimezone(clinic_timezone())
    return date(local.year, local.month, local.day), time(local.hour, local.minute)


def truncate_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def ensure_instant(value: datetime) -> datetime:
    """Normalize a datetime into an instant.

    Aware values are converted to UTC. Naive values are read as clinic
    wall-clock time.
    """
    if value.tzinfo is None:
        return to_instant(value.date(), value.time())
    return truncate_to_minute(value.astimezone(timezone.utc))


def start_of_day(day: str | date) -> datetime:
    """Return the first instant of ``day`` on the clinic clock.

    Some zones jump over midnight itself. The day then begins where the
    jump lands, e.g. 01:00 instead of a 00:00 that never happens.
    """
    day = parse_date(day)
    tz = clinic_timezone()
    midnight = datetime.combine(day, time.min)

    try:
        localized = tz.localize(midnight, is_dst=None)
    except pytz.NonExistentTimeError:
        localized = tz.normalize(tz.localize(midnight, is_dst=False))
    except pytz.AmbiguousTimeError:
        localized = tz.localize(midnight, is_dst=True)

    return localized.astimezone(timezone.utc)


def local_day_bounds(day: str | date) -> tuple[datetime, datetime]:
    day = parse_date(day)
    return start_of_day(day), start_of_day(day + timedelta(days=1))


def describe_instant(instant: datetime) -> dict[str, str]:
    local_date, local_time = to_local(instant)
    return {'date': local_date.isoformat(), 'time': format_time_of_day(local_time)}

import time as host_time
from datetime import date, datetime, time, timedelta, timezone

import pytest

from backend.core import config
from backend.core.errors import InvalidInputError, ValidationError
from backend.scheduling.local_time import (
    Weekday,
    describe_instant,
    ensure_instant,
    local_day_bounds,
    parse_time_of_day,
    parse_weekday,
    start_of_day,
    to_instant,
    to_local,
    weekday_of,
)


def test_to_instant_reads_wall_clock_in_clinic_timezone() -> None:
    assert to_instant('2026-01-05', '09:00') == datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc)


def test_to_local_reverses_to_instant() -> None:
    assert to_local(datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc)) == (date(2026, 1, 5), time(9, 0))


@pytest.mark.parametrize('clinic_timezone', ['America/Mexico_City', 'America/New_York', 'Europe/Madrid', 'UTC'])
def test_round_trip_preserves_date_and_time_of_day(monkeypatch: pytest.MonkeyPatch, clinic_timezone: str) -> None:
    monkeypatch.setattr(config, 'CLINIC_TIMEZONE', clinic_timezone)
    # Times that exist on every day of the year in these zones.
    times_of_day = [time(0, 0), time(8, 30), time(12, 45), time(18, 59), time(23, 59)]

    day = date(2026, 1, 1)
    while day.year == 2026:
        for time_of_day in times_of_day:
            assert to_local(to_instant(day, time_of_day)) == (day, time_of_day)
        day += timedelta(days=1)


@pytest.mark.skipif(not hasattr(host_time, 'tzset'), reason='host timezone cannot be changed on this platform')
def test_conversion_ignores_host_timezone(monkeypatch: pytest.MonkeyPatch) -> None:
    expected = to_instant('2026-07-15', '10:30')

    try:
        with monkeypatch.context() as patched:
            patched.setenv('TZ', 'Asia/Tokyo')
            host_time.tzset()
            assert to_instant('2026-07-15', '10:30') == expected
            assert to_local(expected) == (date(2026, 7, 15), time(10, 30))
    finally:
        host_time.tzset()


def test_nonexistent_local_time_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'CLINIC_TIMEZONE', 'America/New_York')

    with pytest.raises(InvalidInputError):
        to_instant('2026-03-08', '02:30')


def test_repeated_local_time_resolves_to_first_occurrence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'CLINIC_TIMEZONE', 'America/New_York')

    instant = to_instant('2026-11-01', '01:30')

    assert instant == datetime(2026, 11, 1, 5, 30, tzinfo=timezone.utc)
    assert to_local(instant) == (date(2026, 11, 1), time(1, 30))


@pytest.mark.parametrize(
    ('day', 'time_of_day'),
    [
        ('2026-13-01', '09:00'),
        ('2026-02-30', '09:00'),
        ('05/01/2026', '09:00'),
        ('2026-01-05', '24:00'),
        ('2026-01-05', '9:5'),
        ('2026-01-05', 'noon'),
        ('2026-01-05', ''),
    ],
)
def test_malformed_input_fails_with_invalid_input_error(day: str, time_of_day: str) -> None:
    with pytest.raises(InvalidInputError) as exception_info:
        to_instant(day, time_of_day)

    assert isinstance(exception_info.value, ValidationError)
    assert exception_info.value.kind == 'invalid_input'


def test_single_digit_hour_is_accepted() -> None:
    assert parse_time_of_day(' 9:05 ') == time(9, 5)


def test_ensure_instant_truncates_to_the_minute() -> None:
    instant = ensure_instant(datetime(2026, 1, 5, 15, 0, 45, 123000, tzinfo=timezone.utc))

    assert instant == datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc)


def test_ensure_instant_reads_naive_values_as_clinic_time() -> None:
    assert ensure_instant(datetime(2026, 1, 5, 9, 0)) == datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc)


def test_local_day_bounds_span_one_clinic_day() -> None:
    start, end = local_day_bounds('2026-01-05')

    assert start == datetime(2026, 1, 5, 6, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(days=1)


def test_day_bounds_survive_a_jump_over_midnight(monkeypatch: pytest.MonkeyPatch) -> None:
    # Santiago skips 2026-09-06 00:00, going straight to 01:00 -03.
    monkeypatch.setattr(config, 'CLINIC_TIMEZONE', 'America/Santiago')
    jump = datetime(2026, 9, 6, 4, 0, tzinfo=timezone.utc)

    saturday_start, saturday_end = local_day_bounds('2026-09-05')
    sunday_start, sunday_end = local_day_bounds('2026-09-06')

    assert saturday_start == datetime(2026, 9, 5, 4, 0, tzinfo=timezone.utc)
    assert saturday_end == sunday_start == jump
    assert sunday_end - sunday_start == timedelta(hours=23)
    assert to_local(sunday_start) == (date(2026, 9, 6), time(1, 0))


def test_start_of_day_is_midnight_on_ordinary_days() -> None:
    assert start_of_day(date(2026, 1, 5)) == to_instant('2026-01-05', '00:00')


def test_describe_instant_returns_local_strings() -> None:
    assert describe_instant(datetime(2026, 1, 5, 22, 5, tzinfo=timezone.utc)) == {'date': '2026-01-05', 'time': '16:05'}


def test_weekday_helpers() -> None:
    assert weekday_of(date(2026, 1, 5)) == Weekday.MONDAY
    assert weekday_of(date(2026, 1, 11)) == Weekday.SUNDAY
    assert parse_weekday(' Friday ') == Weekday.FRIDAY

    with pytest.raises(InvalidInputError):
        parse_weekday('someday')

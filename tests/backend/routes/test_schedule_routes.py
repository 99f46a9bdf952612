import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from backend.routes.schedule_routes import (
    DayWindowRequest,
    ScheduleConflictPreviewRequest,
    SetDayWindowRequest,
    SetScheduleRequest,
    get_provider_schedule,
    list_provider_slots,
    preview_schedule_conflicts,
    save_provider_schedule,
    set_provider_day_window,
)
from backend.scheduling import availability, booking

PROVIDER_ID = 'dr-garcia'


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.routes.schedule_routes.ensure_database_ready', lambda: None)


def test_day_window_request_normalizes_blank_fields() -> None:
    request = DayWindowRequest(is_available=False, start_time='  ', end_time=' 17:00 ', notes='   ')

    assert request.start_time is None
    assert request.end_time == '17:00'
    assert request.notes is None


def test_set_schedule_request_requires_updated_by_and_days() -> None:
    with pytest.raises(ValidationError):
        SetScheduleRequest(updated_by='   ', days={'monday': {'is_available': False}})
    with pytest.raises(ValidationError):
        SetScheduleRequest(updated_by='admin', days={})


def test_get_provider_schedule_defaults_to_unavailable(db) -> None:
    response = get_provider_schedule(provider_id='dr-new', db=db)

    assert response.version == 0
    assert [day.weekday for day in response.days] == [
        'monday',
        'tuesday',
        'wednesday',
        'thursday',
        'friday',
        'saturday',
        'sunday',
    ]
    assert not any(day.is_available for day in response.days)


def test_get_provider_schedule_returns_configured_days(db, provider) -> None:
    response = get_provider_schedule(provider_id=PROVIDER_ID, db=db)

    monday = response.days[0]
    assert response.version == 1
    assert response.updated_by == 'admin'
    assert (monday.is_available, monday.start_time, monday.end_time) == (True, '09:00', '17:00')


def test_save_provider_schedule_overwrites_supplied_days(db, provider) -> None:
    response = save_provider_schedule(
        provider_id=PROVIDER_ID,
        data=SetScheduleRequest(
            updated_by='dr-garcia',
            days={
                'Tuesday': {'is_available': True, 'start_time': '08:00', 'end_time': '12:00'},
                'monday': {'is_available': False},
            },
        ),
        db=db,
    )

    by_day = {day.weekday: day for day in response.days}
    assert response.version == 2
    assert not by_day['monday'].is_available
    assert by_day['tuesday'].start_time == '08:00'


def test_save_provider_schedule_rejects_invalid_window(db, provider) -> None:
    with pytest.raises(HTTPException) as exception_info:
        save_provider_schedule(
            provider_id=PROVIDER_ID,
            data=SetScheduleRequest(
                updated_by='admin',
                days={'friday': {'is_available': True, 'start_time': '18:00', 'end_time': '20:00'}},
            ),
            db=db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['kind'] == 'invalid_window'
    assert exception_info.value.detail['weekday'] == 'friday'


def test_set_provider_day_window_returns_the_saved_window(db, provider) -> None:
    response = set_provider_day_window(
        provider_id=PROVIDER_ID,
        weekday='wednesday',
        data=SetDayWindowRequest(updated_by='admin', is_available=True, start_time='9:30', end_time='13:00'),
        db=db,
    )

    assert response.weekday == 'wednesday'
    assert response.start_time == '09:30'
    assert response.end_time == '13:00'


@pytest.mark.parametrize(
    ('provider_id', 'weekday', 'kind'),
    [
        ('dr-unknown', 'monday', 'validation_error'),
        (PROVIDER_ID, 'funday', 'invalid_input'),
    ],
)
def test_set_provider_day_window_rejects_bad_targets(db, provider, provider_id: str, weekday: str, kind: str) -> None:
    with pytest.raises(HTTPException) as exception_info:
        set_provider_day_window(
            provider_id=provider_id,
            weekday=weekday,
            data=SetDayWindowRequest(updated_by='admin', is_available=False),
            db=db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['kind'] == kind


def test_preview_schedule_conflicts_lists_affected_appointments(db, provider, at, monkeypatch: pytest.MonkeyPatch) -> None:
    appointment = booking.request_booking(db, PROVIDER_ID, 'patient-1', at('16:00'), 60)
    # Freeze "now" before the booked Monday.
    original = availability.find_schedule_conflicts
    monkeypatch.setattr(
        availability,
        'find_schedule_conflicts',
        lambda db, provider_id, proposed: original(db, provider_id, proposed, now=at('00:00', day='2026-01-01')),
    )

    response = preview_schedule_conflicts(
        provider_id=PROVIDER_ID,
        data=ScheduleConflictPreviewRequest(days={'monday': {'is_available': True, 'start_time': '09:00', 'end_time': '12:00'}}),
        db=db,
    )

    assert [(conflict.appointment_id, conflict.time) for conflict in response] == [(appointment.id, '16:00')]
    assert 'patient' not in response[0].model_dump()


def test_list_provider_slots_reports_each_candidate(db, provider, at) -> None:
    booking.request_booking(db, PROVIDER_ID, 'patient-1', at('09:00'), 60)

    response = list_provider_slots(provider_id=PROVIDER_ID, date='2026-01-05', duration_minutes=60, db=db)

    assert [slot.time for slot in response[:3]] == ['09:00', '09:30', '10:00']
    assert [slot.available for slot in response[:3]] == [False, False, True]
    assert response[0].reason == 'The provider already has an appointment at that time.'


def test_list_provider_slots_rejects_malformed_date(db, provider) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_provider_slots(provider_id=PROVIDER_ID, date='05/01/2026', duration_minutes=30, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['kind'] == 'invalid_input'

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, inspect, text

from backend import database
from backend.database import UTCDateTime


def test_utc_datetime_stores_naive_utc() -> None:
    column_type = UTCDateTime()
    mexico_city = timezone(timedelta(hours=-6))

    stored = column_type.process_bind_param(datetime(2026, 1, 5, 9, 0, tzinfo=mexico_city), None)
    loaded = column_type.process_result_value(stored, None)

    assert stored == datetime(2026, 1, 5, 15, 0)
    assert loaded == datetime(2026, 1, 5, 15, 0, tzinfo=timezone.utc)
    assert column_type.process_bind_param(None, None) is None


def test_ensure_appointment_schema_adds_lookup_indexes(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    engine = create_engine(f'sqlite:///{tmp_path / "existing.db"}')
    with engine.begin() as connection:
        connection.execute(text(
            'CREATE TABLE appointments ('
            'id INTEGER PRIMARY KEY, provider_id VARCHAR, patient_id VARCHAR, '
            'start_time DATETIME, end_time DATETIME, duration_minutes INTEGER, status VARCHAR)'
        ))

    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_appointment_schema_checked', False)

    database.ensure_appointment_schema()
    database.ensure_appointment_schema()

    indexes = {index['name'] for index in inspect(engine).get_indexes('appointments')}
    assert {'idx_appointments_provider_range', 'idx_appointments_provider_status'} <= indexes
    assert database._appointment_schema_checked
    engine.dispose()


def test_ensure_schedule_schema_adds_provider_index(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    engine = create_engine(f'sqlite:///{tmp_path / "schedule.db"}')
    with engine.begin() as connection:
        connection.execute(text(
            'CREATE TABLE schedule_day_windows (id INTEGER PRIMARY KEY, provider_id VARCHAR, weekday VARCHAR)'
        ))

    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_schedule_schema_checked', False)

    database.ensure_schedule_schema()

    indexes = {index['name'] for index in inspect(engine).get_indexes('schedule_day_windows')}
    assert 'idx_schedule_day_windows_provider' in indexes
    engine.dispose()


def test_ensure_schedule_schema_skips_missing_table(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    engine = create_engine(f'sqlite:///{tmp_path / "empty.db"}')
    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_schedule_schema_checked', False)

    database.ensure_schedule_schema()

    assert database._schedule_schema_checked
    assert inspect(engine).get_table_names() == []
    engine.dispose()

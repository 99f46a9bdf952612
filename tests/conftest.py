import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.core import config  # noqa: E402
from backend.database import Base  # noqa: E402
from backend.models import appointment, schedule  # noqa: E402,F401
from backend.models.user import User  # noqa: E402
from backend.scheduling import availability  # noqa: E402
from backend.scheduling.local_time import to_instant  # noqa: E402

PROVIDER_ID = 'dr-garcia'
# 2026-01-05 is a Monday.
MONDAY = '2026-01-05'


@pytest.fixture(autouse=True)
def clinic_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'CLINIC_TIMEZONE', 'America/Mexico_City')
    monkeypatch.setattr(config, 'CLINIC_OPEN_TIME', '08:00')
    monkeypatch.setattr(config, 'CLINIC_CLOSE_TIME', '19:00')
    monkeypatch.setattr(config, 'MIN_WINDOW_MINUTES', 30)
    monkeypatch.setattr(config, 'SLOT_INCREMENT_MINUTES', 30)
    monkeypatch.setattr(config, 'BOOKING_LOCK_TIMEOUT_SECONDS', 2.0)
    monkeypatch.setattr(config, 'BOOKING_RETRY_BACKOFF_SECONDS', 0.01)


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def seed_provider(db, provider_id: str = PROVIDER_ID, role: str = 'doctor', is_active: bool = True) -> User:
    doctor = User(
        id=provider_id,
        email=f'{provider_id}@clinic.example',
        display_name=provider_id,
        role=role,
        is_active=is_active,
    )
    db.add(doctor)
    db.commit()
    return doctor


@pytest.fixture
def provider(db) -> User:
    """An active doctor open Mondays 09:00-17:00 and closed every other day."""
    doctor = seed_provider(db)
    availability.set_window(
        db,
        PROVIDER_ID,
        'monday',
        availability.build_window(True, '09:00', '17:00'),
        updated_by='admin',
    )
    return doctor


@pytest.fixture
def make_provider(db):
    def _make_provider(provider_id: str, role: str = 'doctor', is_active: bool = True) -> User:
        return seed_provider(db, provider_id, role=role, is_active=is_active)

    return _make_provider


@pytest.fixture
def at():
    def _at(time_of_day: str, day: str = MONDAY):
        return to_instant(day, time_of_day)

    return _at

"""Provider schedule model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import relationship

from backend.database import Base, UTCDateTime


class ProviderSchedule(Base):
    """The current weekly schedule of one provider. Overwritten, never deleted."""
    __tablename__ = "provider_schedules"

    provider_id = Column(String, primary_key=True)
    version = Column(Integer, nullable=False, default=0)
    created_by = Column(String)
    updated_by = Column(String)
    updated_at = Column(UTCDateTime)

    day_windows = relationship(
        "ScheduleDayWindow",
        back_populates="schedule",
        cascade="all, delete-orphan",
    )


class ScheduleDayWindow(Base):
    """The open interval of one weekday in a provider schedule."""
    __tablename__ = "schedule_day_windows"
    __table_args__ = (
        UniqueConstraint("provider_id", "weekday", name="uq_schedule_day_windows_provider_weekday"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, ForeignKey("provider_schedules.provider_id"), nullable=False)
    weekday = Column(String, nullable=False)
    is_available = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time)
    end_time = Column(Time)
    notes = Column(String)

    schedule = relationship("ProviderSchedule", back_populates="day_windows")

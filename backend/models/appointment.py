"""Appointment model definitions."""

from sqlalchemy import Column, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base, UTCDateTime
from backend.scheduling.status import RESERVING_STATUS_VALUES


class Appointment(Base):
    """Represents one reservation of a provider's time. Never physically deleted."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, nullable=False, index=True)
    patient_id = Column(String, nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False)
    appointment_type = Column(String)
    notes = Column(String)
    created_by = Column(String)
    created_at = Column(UTCDateTime)
    updated_at = Column(UTCDateTime)
    completed_at = Column(UTCDateTime)

    history = relationship(
        "AppointmentStatusHistory",
        back_populates="appointment",
        order_by="AppointmentStatusHistory.id",
        cascade="all, delete-orphan",
    )


class AppointmentStatusHistory(Base):
    """Append-only audit entry for one status change."""
    __tablename__ = "appointment_status_history"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    previous_status = Column(String)
    new_status = Column(String, nullable=False)
    performed_by = Column(String, nullable=False)
    performed_at = Column(UTCDateTime, nullable=False)
    details = Column(String)

    appointment = relationship("Appointment", back_populates="history")


# Last-resort guard against two reserving appointments starting together.
Index(
    "uq_appointments_provider_start_reserving",
    Appointment.provider_id,
    Appointment.start_time,
    unique=True,
    sqlite_where=Appointment.status.in_(RESERVING_STATUS_VALUES),
    postgresql_where=Appointment.status.in_(RESERVING_STATUS_VALUES),
)

"""User model definitions."""

from sqlalchemy import Boolean, Column, String
from backend.database import Base


PROVIDER_ROLE = "doctor"


class User(Base):
    """Represents a clinic staff member from the provider directory."""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, index=True)
    display_name = Column(String)
    role = Column(String)  # doctor/staff/admin
    is_active = Column(Boolean, default=True, nullable=False)

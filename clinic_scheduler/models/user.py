"""User model definitions."""

from sqlalchemy import Column, DateTime, Integer, String, func
from clinic_scheduler.database import Base

USER_ROLES = ('patient', 'doctor', 'admin', 'center_admin')


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String)
    role = Column(String, nullable=False)  # patient/doctor/admin/center_admin
    created_at = Column(DateTime, server_default=func.now())

"""Doctor and medical center model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from clinic_scheduler.database import Base


class MedicalCenter(Base):
    """Hospital, clinic or laboratory a doctor practices at."""
    __tablename__ = "medical_centers"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    address = Column(String)
    type = Column(String)


class Doctor(Base):
    """Doctor profile linked to a user account."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True)
    medical_center_id = Column(Integer, ForeignKey("medical_centers.id"), nullable=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    phone = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)
    # Overrides DEFAULT_SLOT_MINUTES when set.
    slot_minutes = Column(Integer, nullable=True)

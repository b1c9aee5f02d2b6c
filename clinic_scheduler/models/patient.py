"""Patient model definitions."""

from sqlalchemy import Column, Date, ForeignKey, Integer, String
from clinic_scheduler.database import Base


class Patient(Base):
    """Patient profile linked to a user account."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    birth_date = Column(Date)
    phone = Column(String)

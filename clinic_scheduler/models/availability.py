"""Availability model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Time, UniqueConstraint
from clinic_scheduler.database import Base

BLOCK_KINDS = ('vacation', 'sick_leave', 'meeting', 'unavailable')


class AvailabilityWindow(Base):
    """Recurring weekly window a doctor accepts appointments in.

    day_of_week runs 0 (Sunday) through 6 (Saturday).
    """
    __tablename__ = "doctor_availability"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'day_of_week', 'start_time', 'end_time', name='uq_doctor_availability_window'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(DateTime)


class ScheduleBlock(Base):
    """Span during which a doctor is not available, overriding any window."""
    __tablename__ = "schedule_blocks"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    start_datetime = Column(DateTime, nullable=False)
    end_datetime = Column(DateTime, nullable=False)
    kind = Column(String, nullable=False, default='unavailable')
    reason = Column(String)
    created_at = Column(DateTime)

"""Slot model definitions."""

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.ext.hybrid import hybrid_property
from clinic_scheduler.database import Base

SLOT_TYPES = ('regular', 'emergency', 'follow_up')


class Slot(Base):
    """A bookable unit of a doctor's time with a capacity counter."""
    __tablename__ = "appointment_slots"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'date', 'start_time', name='uq_appointment_slots_doctor_start'),
        CheckConstraint('occupancy >= 0 AND occupancy <= capacity', name='ck_appointment_slots_occupancy'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_type = Column(String, nullable=False, default='regular')
    capacity = Column(Integer, nullable=False, default=1)
    occupancy = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    @hybrid_property
    def is_available(self):
        return self.occupancy < self.capacity

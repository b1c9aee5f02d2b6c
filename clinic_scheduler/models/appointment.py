"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from clinic_scheduler.database import Base


class Appointment(Base):
    """A patient's booking of one slot with a doctor.

    Rows are never deleted; terminal statuses are kept for history.
    """
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    slot_id = Column(Integer, ForeignKey("appointment_slots.id"), nullable=True)
    service_id = Column(Integer, ForeignKey("medical_services.id"))
    procedure_id = Column(Integer, ForeignKey("medical_procedures.id"), nullable=True)
    appointment_datetime = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, default=30)
    reason = Column(String)
    notes = Column(String)
    status = Column(String, nullable=False, default='pending')
    rescheduled_from_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    reminder_sent_at = Column(DateTime)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

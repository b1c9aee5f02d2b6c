"""Notification outbox model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from clinic_scheduler.database import Base


class Notification(Base):
    """A notification intent awaiting delivery by the notification service."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    appointment_id = Column(Integer, ForeignKey("appointments.id"))
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    status = Column(String, nullable=False, default='pending')
    created_at = Column(DateTime)
    sent_at = Column(DateTime)

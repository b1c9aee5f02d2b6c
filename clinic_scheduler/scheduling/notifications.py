"""Notification intents emitted by the scheduling core.

The core only records what should be sent. Delivery and retries belong to the
notification service, which reads pending rows from the outbox table.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy.orm import Session

from clinic_scheduler.models.notification import Notification

logger = logging.getLogger(__name__)

APPOINTMENT_CONFIRMATION = 'appointment_confirmation'
APPOINTMENT_CANCELLATION = 'appointment_cancellation'
APPOINTMENT_REMINDER = 'appointment_reminder'
GENERAL = 'general'

NOTIFICATION_TITLES = {
    APPOINTMENT_CONFIRMATION: 'Appointment pending confirmation',
    APPOINTMENT_CANCELLATION: 'Appointment canceled',
    APPOINTMENT_REMINDER: 'Upcoming appointment reminder',
    GENERAL: 'Appointment update',
}


@dataclass(frozen=True)
class NotificationIntent:
    user_id: int | None
    type: str
    appointment_id: int


class Notifier(Protocol):
    def emit(self, intent: NotificationIntent) -> None: ...


class OutboxNotifier:
    """Writes intents into the notifications table inside the caller's transaction."""

    def __init__(self, db: Session, clock=datetime.now):
        self.db = db
        self.clock = clock

    def emit(self, intent: NotificationIntent) -> None:
        if intent.user_id is None:
            logger.warning(
                'Skipping %s for appointment %s: recipient has no user account',
                intent.type,
                intent.appointment_id,
            )
            return

        self.db.add(
            Notification(
                user_id=intent.user_id,
                appointment_id=intent.appointment_id,
                type=intent.type,
                title=NOTIFICATION_TITLES.get(intent.type, NOTIFICATION_TITLES[GENERAL]),
                status='pending',
                created_at=self.clock(),
            )
        )

"""
Periodic scheduling jobs.

Run from cron or a worker:
- materialize_upcoming_slots: keep the ledger populated ahead of time
- mark_overdue_no_shows: pending/confirmed -> no_show once the slot is long past
- queue_due_reminders: one appointment_reminder intent per upcoming visit
"""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.core.errors import InvalidTransition
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.doctor import Doctor
from clinic_scheduler.models.patient import Patient
from clinic_scheduler.scheduling.coordinator import BookingCoordinator
from clinic_scheduler.scheduling.ledger import SlotLedger
from clinic_scheduler.scheduling.notifications import APPOINTMENT_REMINDER, NotificationIntent, OutboxNotifier
from clinic_scheduler.scheduling.state_machine import ACTIVE_STATUSES
from clinic_scheduler.scheduling.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

ACTIVE_STATUS_VALUES = [status.value for status in ACTIVE_STATUSES]


def materialize_upcoming_slots(
    db: Session,
    today: date | None = None,
    horizon_days: int | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Create missing slots for every active doctor from today through the horizon.

    Returns:
        dict: doctors processed and slots created
    """
    today = today or date.today()
    horizon_days = config.SLOT_HORIZON_DAYS if horizon_days is None else horizon_days
    date_to = today + timedelta(days=horizon_days)

    summary = {"doctors": 0, "slots_created": 0}
    doctor_ids = db.scalars(select(Doctor.id).where(Doctor.is_active.is_(True)).order_by(Doctor.id)).all()

    ledger = SlotLedger(db)
    for doctor_id in doctor_ids:
        with unit_of_work(db):
            created = ledger.ensure_slots(doctor_id, today, date_to, not_before=now)
        summary["doctors"] += 1
        summary["slots_created"] += created

    logger.info(
        "Slot materialization complete: %s doctors, %s slots created through %s",
        summary["doctors"],
        summary["slots_created"],
        date_to,
    )
    return summary


def mark_overdue_no_shows(db: Session, now: datetime | None = None, coordinator: BookingCoordinator | None = None) -> dict:
    """
    Move appointments that were never started to no_show.

    An appointment is overdue once its slot ended more than NO_SHOW_GRACE_MINUTES ago.
    """
    now = now or datetime.now()
    coordinator = coordinator or BookingCoordinator(db)
    grace = timedelta(minutes=config.NO_SHOW_GRACE_MINUTES)

    candidates = db.execute(
        select(Appointment.id, Appointment.appointment_datetime, Appointment.duration_minutes).where(
            Appointment.status.in_(ACTIVE_STATUS_VALUES),
            Appointment.appointment_datetime < now,
        )
    ).all()

    summary = {"no_show": 0, "skipped": 0}
    for appointment_id, appointment_start, duration_minutes in candidates:
        appointment_end = appointment_start + timedelta(minutes=duration_minutes or 0)
        if appointment_end + grace > now:
            continue
        try:
            coordinator.mark_no_show(appointment_id)
        except InvalidTransition:
            # Checked in or canceled since the query ran.
            summary["skipped"] += 1
            continue
        summary["no_show"] += 1

    if summary["no_show"]:
        logger.info("Marked %s appointment(s) as no_show", summary["no_show"])
    return summary


def queue_due_reminders(db: Session, now: datetime | None = None, notifier=None) -> dict:
    """Emit a reminder intent for each active appointment starting within the lead time."""
    now = now or datetime.now()
    notifier = notifier or OutboxNotifier(db)
    lead = timedelta(hours=config.REMINDER_LEAD_HOURS)

    summary = {"reminders": 0}
    with unit_of_work(db):
        due = db.execute(
            select(Appointment.id, Patient.user_id)
            .join(Patient, Appointment.patient_id == Patient.id)
            .where(
                Appointment.status.in_(ACTIVE_STATUS_VALUES),
                Appointment.reminder_sent_at.is_(None),
                Appointment.appointment_datetime > now,
                Appointment.appointment_datetime <= now + lead,
            )
            .order_by(Appointment.appointment_datetime.asc())
        ).all()

        for appointment_id, user_id in due:
            claimed = db.execute(
                update(Appointment)
                .where(Appointment.id == appointment_id, Appointment.reminder_sent_at.is_(None))
                .values(reminder_sent_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                continue
            notifier.emit(NotificationIntent(user_id, APPOINTMENT_REMINDER, appointment_id))
            summary["reminders"] += 1

    if summary["reminders"]:
        logger.info("Queued %s appointment reminder(s)", summary["reminders"])
    return summary

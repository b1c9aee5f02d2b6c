"""Doctor and admin edits to weekly windows and schedule blocks."""

import logging
from datetime import datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from clinic_scheduler.core.errors import InvalidWindow, NotFound
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.availability import BLOCK_KINDS, AvailabilityWindow, ScheduleBlock
from clinic_scheduler.models.doctor import Doctor
from clinic_scheduler.scheduling.state_machine import ACTIVE_STATUSES
from clinic_scheduler.scheduling.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)


def validate_window(day_of_week: int, start_time: time, end_time: time) -> None:
    if not 0 <= day_of_week <= 6:
        raise InvalidWindow('day_of_week must be between 0 (Sunday) and 6 (Saturday).')
    if start_time >= end_time:
        raise InvalidWindow('Availability window must start before it ends.')


def validate_block(start_datetime: datetime, end_datetime: datetime, kind: str) -> None:
    if start_datetime >= end_datetime:
        raise InvalidWindow('Schedule block must start before it ends.')
    if kind not in BLOCK_KINDS:
        raise InvalidWindow(f'Schedule block kind must be one of: {", ".join(BLOCK_KINDS)}.')


def _require_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.get(Doctor, doctor_id)
    if doctor is None:
        raise NotFound('Doctor not found.')
    return doctor


def add_window(
    db: Session,
    doctor_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
    clock=datetime.now,
) -> AvailabilityWindow:
    validate_window(day_of_week, start_time, end_time)

    with unit_of_work(db):
        _require_doctor(db, doctor_id)
        window = AvailabilityWindow(
            doctor_id=doctor_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            created_at=clock(),
        )
        db.add(window)

    db.refresh(window)
    return window


def remove_window(db: Session, window_id: int) -> None:
    with unit_of_work(db):
        window = db.get(AvailabilityWindow, window_id)
        if window is None:
            raise NotFound('Availability window not found.')
        db.delete(window)


def list_windows(db: Session, doctor_id: int) -> list[AvailabilityWindow]:
    return db.scalars(
        select(AvailabilityWindow)
        .where(AvailabilityWindow.doctor_id == doctor_id)
        .order_by(AvailabilityWindow.day_of_week.asc(), AvailabilityWindow.start_time.asc())
    ).all()


def add_block(
    db: Session,
    doctor_id: int,
    start_datetime: datetime,
    end_datetime: datetime,
    kind: str = 'unavailable',
    reason: str | None = None,
    clock=datetime.now,
) -> ScheduleBlock:
    """Record time the doctor is unavailable.

    Appointments already booked inside the block are kept; they are logged so
    staff can cancel or move them.
    """
    validate_block(start_datetime, end_datetime, kind)

    with unit_of_work(db):
        _require_doctor(db, doctor_id)
        block = ScheduleBlock(
            doctor_id=doctor_id,
            start_datetime=start_datetime,
            end_datetime=end_datetime,
            kind=kind,
            reason=reason,
            created_at=clock(),
        )
        db.add(block)
        affected = find_appointments_in_block(db, doctor_id, start_datetime, end_datetime)

    if affected:
        logger.warning(
            'Schedule block for doctor %s overlaps %s active appointment(s): %s',
            doctor_id,
            len(affected),
            ', '.join(str(appointment_id) for appointment_id in affected),
        )

    db.refresh(block)
    return block


def find_appointments_in_block(
    db: Session,
    doctor_id: int,
    start_datetime: datetime,
    end_datetime: datetime,
) -> list[int]:
    candidates = db.execute(
        select(Appointment.id, Appointment.appointment_datetime, Appointment.duration_minutes).where(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_([status.value for status in ACTIVE_STATUSES]),
            Appointment.appointment_datetime < end_datetime,
        )
    ).all()

    overlapping = []
    for appointment_id, appointment_start, duration_minutes in candidates:
        appointment_end = appointment_start + timedelta(minutes=duration_minutes or 0)
        if appointment_end > start_datetime:
            overlapping.append(appointment_id)
    return overlapping


def remove_block(db: Session, block_id: int) -> None:
    with unit_of_work(db):
        block = db.get(ScheduleBlock, block_id)
        if block is None:
            raise NotFound('Schedule block not found.')
        db.delete(block)


def list_blocks(db: Session, doctor_id: int, not_before: datetime | None = None) -> list[ScheduleBlock]:
    query = select(ScheduleBlock).where(ScheduleBlock.doctor_id == doctor_id)
    if not_before is not None:
        query = query.where(ScheduleBlock.end_datetime > not_before)
    return db.scalars(query.order_by(ScheduleBlock.start_datetime.asc())).all()
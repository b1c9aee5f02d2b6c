"""Durable store of materialized slots and their occupancy counters."""

import enum
import logging
from datetime import date, datetime, timedelta

from sqlalchemy import and_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.models.availability import AvailabilityWindow, ScheduleBlock
from clinic_scheduler.models.doctor import Doctor
from clinic_scheduler.models.slot import Slot
from clinic_scheduler.scheduling.resolver import resolve_candidates

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 500


class ReservationResult(enum.Enum):
    RESERVED = 'reserved'
    SLOT_FULL = 'slot_full'
    SLOT_NOT_FOUND = 'slot_not_found'


def slot_granularity_minutes(doctor: Doctor | None) -> int:
    if doctor is not None and doctor.slot_minutes:
        return doctor.slot_minutes
    return config.DEFAULT_SLOT_MINUTES


class SlotLedger:
    """Slot materialization and capacity bookkeeping over a session.

    The ledger never commits; it runs inside the caller's unit of work.
    """

    def __init__(self, db: Session, clock=datetime.now):
        self.db = db
        self.clock = clock

    def ensure_slots(
        self,
        doctor_id: int,
        date_from: date,
        date_to: date,
        not_before: datetime | None = None,
    ) -> int:
        """Insert a slot for every resolver candidate that has none yet.

        Existing slots are left untouched so manual capacity or type edits
        survive. Returns the number of slots inserted.
        """
        doctor = self.db.get(Doctor, doctor_id)
        windows = self.db.scalars(
            select(AvailabilityWindow).where(AvailabilityWindow.doctor_id == doctor_id)
        ).all()
        if not windows:
            return 0

        range_start = datetime.combine(date_from, datetime.min.time())
        range_end = datetime.combine(date_to + timedelta(days=1), datetime.min.time())
        blocks = self.db.scalars(
            select(ScheduleBlock).where(
                ScheduleBlock.doctor_id == doctor_id,
                ScheduleBlock.start_datetime < range_end,
                ScheduleBlock.end_datetime > range_start,
            )
        ).all()

        now = self.clock()
        rows = []
        seen = set()
        for candidate in resolve_candidates(
            windows,
            blocks,
            date_from,
            date_to,
            slot_granularity_minutes(doctor),
            not_before=not_before,
        ):
            key = (candidate.date, candidate.start_time)
            if key in seen:
                continue
            seen.add(key)
            rows.append({
                'doctor_id': doctor_id,
                'date': candidate.date,
                'start_time': candidate.start_time,
                'end_time': candidate.end_time,
                'slot_type': 'regular',
                'capacity': 1,
                'occupancy': 0,
                'created_at': now,
                'updated_at': now,
            })

        inserted = 0
        for offset in range(0, len(rows), INSERT_BATCH_SIZE):
            inserted += self._insert_if_absent(rows[offset:offset + INSERT_BATCH_SIZE])

        if inserted:
            logger.info('Materialized %s slots for doctor %s (%s to %s)', inserted, doctor_id, date_from, date_to)
        return inserted

    def _insert_if_absent(self, rows: list[dict]) -> int:
        if not rows:
            return 0

        dialect_name = self.db.get_bind().dialect.name
        if dialect_name in ('postgresql', 'sqlite'):
            dialect_insert = postgresql.insert if dialect_name == 'postgresql' else sqlite.insert
            statement = dialect_insert(Slot.__table__).values(rows).on_conflict_do_nothing(
                index_elements=['doctor_id', 'date', 'start_time'],
            )
            result = self.db.execute(statement)
            return max(result.rowcount or 0, 0)

        inserted = 0
        for row in rows:
            try:
                with self.db.begin_nested():
                    self.db.execute(Slot.__table__.insert().values(**row))
                inserted += 1
            except IntegrityError:
                continue
        return inserted

    def try_reserve(self, slot_id: int) -> ReservationResult:
        """Take one unit of capacity with a single conditional update."""
        result = self.db.execute(
            update(Slot)
            .where(Slot.id == slot_id, Slot.occupancy < Slot.capacity)
            .values(occupancy=Slot.occupancy + 1, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return ReservationResult.RESERVED

        exists = self.db.scalar(select(Slot.id).where(Slot.id == slot_id))
        if exists is None:
            return ReservationResult.SLOT_NOT_FOUND
        return ReservationResult.SLOT_FULL

    def release(self, slot_id: int) -> None:
        """Give back one unit of capacity; occupancy never drops below zero."""
        self.db.execute(
            update(Slot)
            .where(Slot.id == slot_id, Slot.occupancy > 0)
            .values(occupancy=Slot.occupancy - 1, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )

    def get_slot(self, slot_id: int) -> Slot | None:
        return self.db.get(Slot, slot_id, populate_existing=True)

    def is_blocked(self, slot: Slot) -> bool:
        slot_start = datetime.combine(slot.date, slot.start_time)
        slot_end = datetime.combine(slot.date, slot.end_time)
        blocking = self.db.scalar(
            select(ScheduleBlock.id).where(
                ScheduleBlock.doctor_id == slot.doctor_id,
                ScheduleBlock.start_datetime < slot_end,
                ScheduleBlock.end_datetime > slot_start,
            ).limit(1)
        )
        return blocking is not None

    def available_slots(
        self,
        doctor_id: int,
        date_from: date,
        date_to: date,
        not_before: datetime | None = None,
    ) -> list[Slot]:
        slots = self.db.scalars(
            select(Slot)
            .where(
                Slot.doctor_id == doctor_id,
                Slot.date >= date_from,
                Slot.date <= date_to,
                Slot.is_available,
            )
            .order_by(Slot.date.asc(), Slot.start_time.asc())
            .execution_options(populate_existing=True)
        ).all()

        range_start = datetime.combine(date_from, datetime.min.time())
        range_end = datetime.combine(date_to + timedelta(days=1), datetime.min.time())
        blocks = self.db.execute(
            select(ScheduleBlock.start_datetime, ScheduleBlock.end_datetime).where(
                and_(
                    ScheduleBlock.doctor_id == doctor_id,
                    ScheduleBlock.start_datetime < range_end,
                    ScheduleBlock.end_datetime > range_start,
                )
            )
        ).all()

        available = []
        for slot in slots:
            slot_start = datetime.combine(slot.date, slot.start_time)
            slot_end = datetime.combine(slot.date, slot.end_time)
            if not_before is not None and slot_start <= not_before:
                continue
            if any(block_start < slot_end and block_end > slot_start for block_start, block_end in blocks):
                continue
            available.append(slot)
        return available

from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.auth.dependencies import require_staff
from clinic_scheduler.core.errors import SchedulingError
from clinic_scheduler.models.availability import BLOCK_KINDS
from clinic_scheduler.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from clinic_scheduler.scheduling import availability
from clinic_scheduler.scheduling.coordinator import Actor
from clinic_scheduler.scheduling.queries import list_available_slots

router = APIRouter(tags=['availability'])

SLOT_RANGE_DAYS = 28
MAX_BLOCK_REASON_LENGTH = 300


class CreateWindowRequest(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: int) -> int:
        if not 0 <= value <= 6:
            raise ValueError('day_of_week must be between 0 (Sunday) and 6 (Saturday).')
        return value


class WindowResponse(BaseModel):
    id: int
    doctor_id: int
    day_of_week: int
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


class CreateBlockRequest(BaseModel):
    start_datetime: datetime
    end_datetime: datetime
    kind: str = 'unavailable'
    reason: str | None = None

    @field_validator('kind')
    @classmethod
    def validate_kind(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in BLOCK_KINDS:
            raise ValueError('Invalid schedule block kind.')
        return normalized

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCK_REASON_LENGTH} characters or fewer.')

        return normalized


class BlockResponse(BaseModel):
    id: int
    doctor_id: int
    start_datetime: datetime
    end_datetime: datetime
    kind: str
    reason: str | None = None

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    id: int
    doctor_id: int
    date: date
    start_time: time
    end_time: time
    slot_type: str
    capacity: int
    occupancy: int
    is_available: bool

    class Config:
        from_attributes = True


class SlotRangeQuery(BaseModel):
    date_from: date
    date_to: date

    @model_validator(mode='after')
    def validate_range(self) -> 'SlotRangeQuery':
        if self.date_to < self.date_from:
            raise ValueError('date_to must not be before date_from.')
        if (self.date_to - self.date_from).days > SLOT_RANGE_DAYS:
            raise ValueError(f'Slot queries cover at most {SLOT_RANGE_DAYS} days.')
        return self


@router.post('/doctors/{doctor_id}/windows', response_model=WindowResponse, status_code=status.HTTP_201_CREATED)
def create_window(
    doctor_id: int,
    data: CreateWindowRequest,
    actor: Actor = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability.add_window(db, doctor_id, data.day_of_week, data.start_time, data.end_time)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctors/{doctor_id}/windows', response_model=list[WindowResponse])
def list_windows(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return availability.list_windows(db, doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/windows/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_window(
    window_id: int,
    actor: Actor = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        availability.remove_window(db, window_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/doctors/{doctor_id}/blocks', response_model=BlockResponse, status_code=status.HTTP_201_CREATED)
def create_block(
    doctor_id: int,
    data: CreateBlockRequest,
    actor: Actor = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability.add_block(
            db,
            doctor_id,
            data.start_datetime,
            data.end_datetime,
            kind=data.kind,
            reason=data.reason,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctors/{doctor_id}/blocks', response_model=list[BlockResponse])
def list_blocks(
    doctor_id: int,
    include_past: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        not_before = None if include_past else datetime.now()
        return availability.list_blocks(db, doctor_id, not_before=not_before)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/blocks/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_block(
    block_id: int,
    actor: Actor = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        availability.remove_block(db, block_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctors/{doctor_id}/slots', response_model=list[SlotResponse])
def list_slots(
    doctor_id: int,
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    today = date.today()
    try:
        slot_range = SlotRangeQuery(
            date_from=date_from or today,
            date_to=date_to or (date_from or today) + timedelta(days=SLOT_RANGE_DAYS),
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    ensure_database_ready()

    try:
        return list_available_slots(
            db,
            doctor_id,
            slot_range.date_from,
            slot_range.date_to,
            now=datetime.now(),
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

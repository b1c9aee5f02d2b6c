from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.auth.dependencies import get_current_actor, require_staff
from clinic_scheduler.core.errors import SchedulingError
from clinic_scheduler.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    is_patient,
    patient_id_for_actor,
    to_http_exception,
)
from clinic_scheduler.scheduling.coordinator import Actor, BookingCoordinator
from clinic_scheduler.scheduling.queries import get_appointment_detail, list_appointments
from clinic_scheduler.scheduling.state_machine import AppointmentStatus

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_REASON_LENGTH = 600


class CreateAppointmentRequest(BaseModel):
    patient_id: int | None = None
    doctor_id: int
    slot_id: int
    service_id: int | None = None
    procedure_id: int | None = None
    reason: str | None = None
    notes: str | None = None

    @field_validator('reason', 'notes')
    @classmethod
    def validate_free_text(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_REASON_LENGTH:
            raise ValueError(f'Text must be {MAX_APPOINTMENT_REASON_LENGTH} characters or fewer.')

        return normalized


class RescheduleAppointmentRequest(BaseModel):
    slot_id: int


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    slot_id: int | None = None
    service_id: int | None = None
    procedure_id: int | None = None
    appointment_datetime: datetime
    duration_minutes: int
    status: str
    reason: str | None = None
    notes: str | None = None
    rescheduled_from_id: int | None = None

    class Config:
        from_attributes = True


class AppointmentDetailResponse(AppointmentResponse):
    patient_first_name: str | None = None
    patient_last_name: str | None = None
    patient_phone: str | None = None
    doctor_first_name: str | None = None
    doctor_last_name: str | None = None
    doctor_phone: str | None = None
    service_name: str | None = None
    procedure_name: str | None = None


def _authorize_appointment_access(db: Session, actor: Actor, appointment_id: int) -> None:
    if not is_patient(actor):
        return

    detail = get_appointment_detail(db, appointment_id)
    if detail.patient_id != patient_id_for_actor(db, actor):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the patient who booked this appointment can change it.',
        )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    if not is_patient(actor) and data.patient_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='patient_id is required when booking on behalf of a patient.',
        )

    ensure_database_ready()

    try:
        patient_id = data.patient_id
        if is_patient(actor):
            patient_id = patient_id_for_actor(db, actor)
            if data.patient_id is not None and data.patient_id != patient_id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail='Patients can only book appointments for themselves.',
                )

        return BookingCoordinator(db).create(
            patient_id=patient_id,
            doctor_id=data.doctor_id,
            service_id=data.service_id,
            slot_id=data.slot_id,
            reason=data.reason,
            procedure_id=data.procedure_id,
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('', response_model=list[AppointmentResponse])
def search_appointments(
    patient_id: int | None = Query(default=None),
    doctor_id: int | None = Query(default=None),
    appointment_status: str | None = Query(default=None, alias='status'),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    if appointment_status is not None:
        normalized_status = appointment_status.strip().lower()
        if normalized_status not in {item.value for item in AppointmentStatus}:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Invalid appointment status.',
            )
        appointment_status = normalized_status

    ensure_database_ready()

    try:
        if is_patient(actor):
            own_patient_id = patient_id_for_actor(db, actor)
            if patient_id is not None and patient_id != own_patient_id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail='Patients can only view their own appointments.',
                )
            patient_id = own_patient_id

        return list_appointments(
            db,
            patient_id=patient_id,
            doctor_id=doctor_id,
            status=appointment_status,
            date_from=date_from,
            date_to=date_to,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentDetailResponse)
def get_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        detail = get_appointment_detail(db, appointment_id)
        if is_patient(actor) and detail.patient_id != patient_id_for_actor(db, actor):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Patients can only view their own appointments.',
            )
        return AppointmentDetailResponse.model_validate(detail, from_attributes=True)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        _authorize_appointment_access(db, actor, appointment_id)
        return BookingCoordinator(db).confirm(appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/check-in', response_model=AppointmentResponse)
def check_in_appointment(
    appointment_id: int,
    actor: Actor = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return BookingCoordinator(db).mark_in_progress(appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    actor: Actor = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return BookingCoordinator(db).mark_completed(appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/no-show', response_model=AppointmentResponse)
def mark_no_show(
    appointment_id: int,
    actor: Actor = Depends(require_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return BookingCoordinator(db).mark_no_show(appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        _authorize_appointment_access(db, actor, appointment_id)
        return BookingCoordinator(db).cancel(appointment_id, actor)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        _authorize_appointment_access(db, actor, appointment_id)
        return BookingCoordinator(db).reschedule(appointment_id, data.slot_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

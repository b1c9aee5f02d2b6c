from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core.errors import SchedulingError
from clinic_scheduler.database import SessionLocal, ensure_scheduling_schema
from clinic_scheduler.models.patient import Patient
from clinic_scheduler.scheduling.coordinator import Actor
from clinic_scheduler.scheduling.state_machine import PATIENT_ROLES
from clinic_scheduler.scheduling.unit_of_work import DATABASE_UNAVAILABLE_DETAIL


def ensure_database_ready() -> None:
    try:
        ensure_scheduling_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def to_http_exception(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def is_patient(actor: Actor) -> bool:
    return actor.role in PATIENT_ROLES


def patient_id_for_actor(db: Session, actor: Actor) -> int:
    patient_id = db.scalar(select(Patient.id).where(Patient.user_id == actor.user_id))
    if patient_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='No patient profile is linked to this account.',
        )
    return patient_id

"""Read side consumed by the presentation layer."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from clinic_scheduler.core.errors import NotFound
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.doctor import Doctor
from clinic_scheduler.models.patient import Patient
from clinic_scheduler.models.service import MedicalProcedure, MedicalService
from clinic_scheduler.models.slot import Slot
from clinic_scheduler.scheduling.directory import SqlDirectory
from clinic_scheduler.scheduling.ledger import SlotLedger
from clinic_scheduler.scheduling.state_machine import AppointmentStatus
from clinic_scheduler.scheduling.unit_of_work import unit_of_work


@dataclass
class AppointmentDetail:
    id: int
    status: str
    appointment_datetime: datetime
    duration_minutes: int
    slot_id: int | None
    reason: str | None
    notes: str | None
    rescheduled_from_id: int | None
    patient_id: int
    patient_first_name: str | None
    patient_last_name: str | None
    patient_phone: str | None
    doctor_id: int
    doctor_first_name: str | None
    doctor_last_name: str | None
    doctor_phone: str | None
    service_id: int | None
    service_name: str | None
    procedure_id: int | None
    procedure_name: str | None


def list_available_slots(
    db: Session,
    doctor_id: int,
    date_from: date,
    date_to: date,
    now: datetime | None = None,
) -> list[Slot]:
    """Materialize any missing slots in the range, then return the open ones.

    Unknown or inactive doctors have no bookable slots.
    """
    doctor = SqlDirectory(db).get_doctor(doctor_id)
    if doctor is None or not doctor.active:
        return []

    ledger = SlotLedger(db)
    with unit_of_work(db):
        ledger.ensure_slots(doctor_id, date_from, date_to, not_before=now)
    return ledger.available_slots(doctor_id, date_from, date_to, not_before=now)


def list_appointments(
    db: Session,
    patient_id: int | None = None,
    doctor_id: int | None = None,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[Appointment]:
    query = select(Appointment)

    if patient_id is not None:
        query = query.where(Appointment.patient_id == patient_id)
    if doctor_id is not None:
        query = query.where(Appointment.doctor_id == doctor_id)
    if status is not None:
        query = query.where(Appointment.status == AppointmentStatus(status).value)
    if date_from is not None:
        query = query.where(Appointment.appointment_datetime >= datetime.combine(date_from, datetime.min.time()))
    if date_to is not None:
        range_end = datetime.combine(date_to + timedelta(days=1), datetime.min.time())
        query = query.where(Appointment.appointment_datetime < range_end)

    return db.scalars(query.order_by(Appointment.appointment_datetime.asc(), Appointment.id.asc())).all()


def get_appointment_detail(db: Session, appointment_id: int) -> AppointmentDetail:
    patient = aliased(Patient)
    doctor = aliased(Doctor)
    service = aliased(MedicalService)
    procedure = aliased(MedicalProcedure)

    row = db.execute(
        select(
            Appointment,
            patient.first_name,
            patient.last_name,
            patient.phone,
            doctor.first_name,
            doctor.last_name,
            doctor.phone,
            service.name,
            procedure.name,
        )
        .outerjoin(patient, Appointment.patient_id == patient.id)
        .outerjoin(doctor, Appointment.doctor_id == doctor.id)
        .outerjoin(service, Appointment.service_id == service.id)
        .outerjoin(procedure, Appointment.procedure_id == procedure.id)
        .where(Appointment.id == appointment_id)
    ).first()

    if row is None:
        raise NotFound('Appointment not found.')

    (
        appointment,
        patient_first_name,
        patient_last_name,
        patient_phone,
        doctor_first_name,
        doctor_last_name,
        doctor_phone,
        service_name,
        procedure_name,
    ) = row

    return AppointmentDetail(
        id=appointment.id,
        status=appointment.status,
        appointment_datetime=appointment.appointment_datetime,
        duration_minutes=appointment.duration_minutes,
        slot_id=appointment.slot_id,
        reason=appointment.reason,
        notes=appointment.notes,
        rescheduled_from_id=appointment.rescheduled_from_id,
        patient_id=appointment.patient_id,
        patient_first_name=patient_first_name,
        patient_last_name=patient_last_name,
        patient_phone=patient_phone,
        doctor_id=appointment.doctor_id,
        doctor_first_name=doctor_first_name,
        doctor_last_name=doctor_last_name,
        doctor_phone=doctor_phone,
        service_id=appointment.service_id,
        service_name=service_name,
        procedure_id=appointment.procedure_id,
        procedure_name=procedure_name,
    )

"""Read-only lookups of doctors, services and procedures used to validate bookings."""

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from clinic_scheduler.models.doctor import Doctor
from clinic_scheduler.models.service import MedicalProcedure, MedicalService


@dataclass(frozen=True)
class DoctorInfo:
    id: int
    user_id: int | None
    active: bool
    center_id: int | None
    slot_minutes: int | None = None


@dataclass(frozen=True)
class ServiceInfo:
    id: int
    name: str


@dataclass(frozen=True)
class ProcedureInfo:
    id: int
    name: str


class DoctorDirectory(Protocol):
    def get_doctor(self, doctor_id: int) -> DoctorInfo | None: ...

    def get_service(self, service_id: int) -> ServiceInfo | None: ...

    def get_procedure(self, procedure_id: int) -> ProcedureInfo | None: ...


class SqlDirectory:
    """Directory backed by the doctors, medical_services and medical_procedures tables."""

    def __init__(self, db: Session):
        self.db = db

    def get_doctor(self, doctor_id: int) -> DoctorInfo | None:
        doctor = self.db.get(Doctor, doctor_id)
        if doctor is None:
            return None
        return DoctorInfo(
            id=doctor.id,
            user_id=doctor.user_id,
            active=bool(doctor.is_active),
            center_id=doctor.medical_center_id,
            slot_minutes=doctor.slot_minutes,
        )

    def get_service(self, service_id: int) -> ServiceInfo | None:
        service = self.db.get(MedicalService, service_id)
        if service is None:
            return None
        return ServiceInfo(id=service.id, name=service.name)

    def get_procedure(self, procedure_id: int) -> ProcedureInfo | None:
        procedure = self.db.get(MedicalProcedure, procedure_id)
        if procedure is None:
            return None
        return ProcedureInfo(id=procedure.id, name=procedure.name)

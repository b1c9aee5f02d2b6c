"""Booking coordinator: the only code path that books, cancels or moves appointments.

Each public method is one unit of work. A slot reservation and the appointment
row that owns it are committed together or not at all.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.core.errors import Conflict, InactiveDoctor, InvalidTransition, NotFound
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.patient import Patient
from clinic_scheduler.models.slot import Slot
from clinic_scheduler.scheduling.directory import DoctorDirectory, DoctorInfo, SqlDirectory
from clinic_scheduler.scheduling.ledger import ReservationResult, SlotLedger
from clinic_scheduler.scheduling.notifications import (
    APPOINTMENT_CANCELLATION,
    APPOINTMENT_CONFIRMATION,
    NotificationIntent,
    Notifier,
    OutboxNotifier,
)
from clinic_scheduler.scheduling.state_machine import (
    INITIAL_STATUS,
    AppointmentStatus,
    cancellation_status_for,
    check_transition,
    releases_slot,
)
from clinic_scheduler.scheduling.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Caller identity, already authenticated upstream."""

    user_id: int | None
    role: str


def slot_start(slot: Slot) -> datetime:
    return datetime.combine(slot.date, slot.start_time)


def slot_duration_minutes(slot: Slot) -> int:
    delta = datetime.combine(slot.date, slot.end_time) - slot_start(slot)
    return int(delta.total_seconds() // 60)


class BookingCoordinator:
    def __init__(
        self,
        db: Session,
        directory: DoctorDirectory | None = None,
        notifier: Notifier | None = None,
        clock=datetime.now,
        keeps_confirmation_on_reschedule: bool | None = None,
    ):
        self.db = db
        self.clock = clock
        self.directory = directory or SqlDirectory(db)
        self.notifier = notifier or OutboxNotifier(db, clock=clock)
        self.ledger = SlotLedger(db, clock=clock)
        if keeps_confirmation_on_reschedule is None:
            keeps_confirmation_on_reschedule = config.RESCHEDULE_KEEPS_CONFIRMATION
        self.keeps_confirmation_on_reschedule = keeps_confirmation_on_reschedule

    def create(
        self,
        patient_id: int,
        doctor_id: int,
        service_id: int | None,
        slot_id: int,
        reason: str | None = None,
        procedure_id: int | None = None,
        notes: str | None = None,
    ) -> Appointment:
        """Reserve the slot and book a pending appointment on it."""
        with unit_of_work(self.db):
            doctor = self._get_active_doctor(doctor_id)

            patient = self.db.get(Patient, patient_id)
            if patient is None:
                raise NotFound('Patient not found.')

            if service_id is not None and self.directory.get_service(service_id) is None:
                raise NotFound('Service not found.')

            if procedure_id is not None and self.directory.get_procedure(procedure_id) is None:
                raise NotFound('Procedure not found.')

            slot = self._get_bookable_slot(slot_id, doctor.id)
            self._reserve(slot.id)

            now = self.clock()
            appointment = Appointment(
                patient_id=patient.id,
                doctor_id=doctor.id,
                slot_id=slot.id,
                service_id=service_id,
                procedure_id=procedure_id,
                appointment_datetime=slot_start(slot),
                duration_minutes=slot_duration_minutes(slot),
                reason=reason,
                notes=notes,
                status=INITIAL_STATUS.value,
                created_at=now,
                updated_at=now,
            )
            self.db.add(appointment)
            self.db.flush()

            self.notifier.emit(NotificationIntent(patient.user_id, APPOINTMENT_CONFIRMATION, appointment.id))

        logger.info('Booked appointment %s for patient %s on slot %s', appointment.id, patient_id, slot_id)
        return appointment

    def cancel(self, appointment_id: int, actor: Actor) -> Appointment:
        """Cancel on behalf of a patient or of staff and give the slot back."""
        with unit_of_work(self.db):
            appointment = self._get_appointment(appointment_id)
            target = cancellation_status_for(actor.role)
            self._apply_transition(appointment, target)

            patient = self.db.get(Patient, appointment.patient_id)
            self.notifier.emit(
                NotificationIntent(patient.user_id if patient else None, APPOINTMENT_CANCELLATION, appointment.id)
            )
            if target is AppointmentStatus.CANCELED:
                doctor = self.directory.get_doctor(appointment.doctor_id)
                self.notifier.emit(
                    NotificationIntent(doctor.user_id if doctor else None, APPOINTMENT_CANCELLATION, appointment.id)
                )

        logger.info('Appointment %s %s by %s', appointment_id, target.value, actor.role)
        return appointment

    def reschedule(self, appointment_id: int, new_slot_id: int) -> Appointment:
        """Move an active appointment onto another slot of the same doctor.

        The old row is closed as ``rescheduled`` and a new row is booked on the
        new slot. If the new slot cannot be reserved nothing changes.
        """
        with unit_of_work(self.db):
            previous = self._get_appointment(appointment_id)
            check_transition(previous.status, AppointmentStatus.RESCHEDULED.value)
            previous_status = previous.status

            self._get_active_doctor(previous.doctor_id)
            new_slot = self._get_bookable_slot(new_slot_id, previous.doctor_id)
            self._reserve(new_slot.id)

            self._apply_transition(previous, AppointmentStatus.RESCHEDULED)

            if self.keeps_confirmation_on_reschedule and previous_status == AppointmentStatus.CONFIRMED.value:
                next_status = AppointmentStatus.CONFIRMED
            else:
                next_status = INITIAL_STATUS

            now = self.clock()
            appointment = Appointment(
                patient_id=previous.patient_id,
                doctor_id=previous.doctor_id,
                slot_id=new_slot.id,
                service_id=previous.service_id,
                procedure_id=previous.procedure_id,
                appointment_datetime=slot_start(new_slot),
                duration_minutes=slot_duration_minutes(new_slot),
                reason=previous.reason,
                notes=previous.notes,
                status=next_status.value,
                rescheduled_from_id=previous.id,
                created_at=now,
                updated_at=now,
            )
            self.db.add(appointment)
            self.db.flush()

            patient = self.db.get(Patient, appointment.patient_id)
            self.notifier.emit(
                NotificationIntent(patient.user_id if patient else None, APPOINTMENT_CONFIRMATION, appointment.id)
            )

        logger.info('Rescheduled appointment %s to %s on slot %s', appointment_id, appointment.id, new_slot_id)
        return appointment

    def confirm(self, appointment_id: int) -> Appointment:
        return self._change_status(appointment_id, AppointmentStatus.CONFIRMED)

    def mark_in_progress(self, appointment_id: int) -> Appointment:
        return self._change_status(appointment_id, AppointmentStatus.IN_PROGRESS)

    def mark_completed(self, appointment_id: int) -> Appointment:
        return self._change_status(appointment_id, AppointmentStatus.COMPLETED)

    def mark_no_show(self, appointment_id: int) -> Appointment:
        return self._change_status(appointment_id, AppointmentStatus.NO_SHOW)

    def _change_status(self, appointment_id: int, target: AppointmentStatus) -> Appointment:
        with unit_of_work(self.db):
            appointment = self._get_appointment(appointment_id)
            self._apply_transition(appointment, target)

        logger.info('Appointment %s moved to %s', appointment_id, target.value)
        return appointment

    def _apply_transition(self, appointment: Appointment, target: AppointmentStatus) -> None:
        current = appointment.status
        check_transition(current, target.value)

        # Compare-and-set on the status so concurrent transitions release the slot once.
        result = self.db.execute(
            update(Appointment)
            .where(Appointment.id == appointment.id, Appointment.status == current)
            .values(status=target.value, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition('Appointment status changed concurrently; reload and retry.')

        if appointment.slot_id is not None and releases_slot(target.value):
            self.ledger.release(appointment.slot_id)

        self.db.refresh(appointment)

    def _get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id, populate_existing=True)
        if appointment is None:
            raise NotFound('Appointment not found.')
        return appointment

    def _get_active_doctor(self, doctor_id: int) -> DoctorInfo:
        doctor = self.directory.get_doctor(doctor_id)
        if doctor is None:
            raise NotFound('Doctor not found.')
        if not doctor.active:
            raise InactiveDoctor('Doctor is not accepting appointments.')
        return doctor

    def _get_bookable_slot(self, slot_id: int, doctor_id: int) -> Slot:
        slot = self.ledger.get_slot(slot_id)
        if slot is None or slot.doctor_id != doctor_id:
            raise NotFound('Slot not found for this doctor.')
        if self.ledger.is_blocked(slot):
            raise Conflict('This time is blocked.')
        if slot_start(slot) <= self.clock():
            raise Conflict('This slot has already started.')
        return slot

    def _reserve(self, slot_id: int) -> None:
        result = self.ledger.try_reserve(slot_id)
        if result is ReservationResult.SLOT_NOT_FOUND:
            raise NotFound('Slot not found.')
        if result is ReservationResult.SLOT_FULL:
            logger.warning('Reservation lost for slot %s: slot is full', slot_id)
            raise Conflict('This slot is already booked.')

from datetime import date, datetime, time

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from clinic_scheduler.core.errors import Conflict, InactiveDoctor, InvalidTransition, NotFound, Unavailable
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.availability import AvailabilityWindow, ScheduleBlock
from clinic_scheduler.models.doctor import Doctor
from clinic_scheduler.models.notification import Notification
from clinic_scheduler.models.slot import Slot
from clinic_scheduler.scheduling.coordinator import Actor, BookingCoordinator
from clinic_scheduler.scheduling.ledger import ReservationResult, SlotLedger

MONDAY = date(2026, 1, 5)
FIXED_NOW = datetime(2026, 1, 1, 8, 0)


def _clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def slots(db, clinic):
    SlotLedger(db).ensure_slots(clinic.doctor.id, MONDAY, MONDAY)
    db.commit()
    return db.scalars(select(Slot).order_by(Slot.start_time)).all()


@pytest.fixture
def coordinator(db):
    return BookingCoordinator(db, clock=_clock)


def _book(coordinator, clinic, slot, patient=None):
    return coordinator.create(
        patient_id=(patient or clinic.patient).id,
        doctor_id=clinic.doctor.id,
        service_id=clinic.service.id,
        slot_id=slot.id,
        reason='Chest pain',
    )


def _occupancy(db, slot) -> int:
    db.refresh(slot)
    return slot.occupancy


def test_create_books_pending_appointment_and_fills_slot(db, clinic, slots, coordinator) -> None:
    appointment = _book(coordinator, clinic, slots[0])

    assert appointment.status == 'pending'
    assert appointment.slot_id == slots[0].id
    assert appointment.appointment_datetime == datetime(2026, 1, 5, 9, 0)
    assert appointment.duration_minutes == 30
    assert appointment.created_at == FIXED_NOW
    assert appointment.updated_at == FIXED_NOW
    assert _occupancy(db, slots[0]) == 1

    notifications = db.scalars(select(Notification)).all()
    assert [(n.user_id, n.type, n.appointment_id) for n in notifications] == [
        (clinic.patient_user.id, 'appointment_confirmation', appointment.id),
    ]


def test_booking_both_monday_slots_then_third_booking_conflicts(db, clinic, slots, coordinator) -> None:
    _book(coordinator, clinic, slots[0])
    _book(coordinator, clinic, slots[1], patient=clinic.other_patient)

    for slot in slots:
        with pytest.raises(Conflict):
            _book(coordinator, clinic, slot)

    assert [_occupancy(db, slot) for slot in slots] == [1, 1]
    assert len(db.scalars(select(Appointment)).all()) == 2


def test_create_rejects_unknown_doctor(db, clinic, slots, coordinator) -> None:
    with pytest.raises(NotFound):
        coordinator.create(clinic.patient.id, 999, clinic.service.id, slots[0].id)


def test_create_rejects_inactive_doctor(db, clinic, slots, coordinator) -> None:
    clinic.doctor.is_active = False
    db.commit()

    with pytest.raises(InactiveDoctor):
        _book(coordinator, clinic, slots[0])

    assert _occupancy(db, slots[0]) == 0


def test_create_rejects_slot_of_another_doctor(db, clinic, slots, coordinator) -> None:
    other_doctor = Doctor(first_name='Jose', last_name='Lara', is_active=True)
    db.add(other_doctor)
    db.commit()

    with pytest.raises(NotFound):
        coordinator.create(clinic.patient.id, other_doctor.id, clinic.service.id, slots[0].id)

    assert _occupancy(db, slots[0]) == 0


def test_create_rejects_missing_slot_and_service(db, clinic, slots, coordinator) -> None:
    with pytest.raises(NotFound):
        coordinator.create(clinic.patient.id, clinic.doctor.id, clinic.service.id, 12345)
    with pytest.raises(NotFound):
        coordinator.create(clinic.patient.id, clinic.doctor.id, 777, slots[0].id)


def test_create_rejects_slot_inside_schedule_block(db, clinic, slots, coordinator) -> None:
    db.add(
        ScheduleBlock(
            doctor_id=clinic.doctor.id,
            start_datetime=datetime(2026, 1, 5, 9, 0),
            end_datetime=datetime(2026, 1, 5, 12, 0),
            kind='sick_leave',
        )
    )
    db.commit()

    with pytest.raises(Conflict):
        _book(coordinator, clinic, slots[0])

    assert _occupancy(db, slots[0]) == 0


def test_create_rejects_slot_that_already_started(db, clinic, slots) -> None:
    late = BookingCoordinator(db, clock=lambda: datetime(2026, 1, 5, 9, 15))

    with pytest.raises(Conflict) as exception_info:
        _book(late, clinic, slots[0])

    assert exception_info.value.detail == 'This slot has already started.'
    assert _occupancy(db, slots[0]) == 0
    assert _book(late, clinic, slots[1]).status == 'pending'


def test_create_rejects_unknown_procedure(db, clinic, slots, coordinator) -> None:
    with pytest.raises(NotFound) as exception_info:
        coordinator.create(clinic.patient.id, clinic.doctor.id, clinic.service.id, slots[0].id, procedure_id=999)

    assert exception_info.value.detail == 'Procedure not found.'
    assert _occupancy(db, slots[0]) == 0
    assert db.scalars(select(Appointment)).all() == []

    booked = coordinator.create(
        clinic.patient.id, clinic.doctor.id, clinic.service.id, slots[0].id, procedure_id=clinic.procedure.id
    )
    assert booked.procedure_id == clinic.procedure.id


def test_failed_appointment_insert_rolls_back_reservation(db, clinic, slots, monkeypatch) -> None:
    class FailingNotifier:
        def emit(self, intent):
            raise OperationalError('INSERT INTO notifications', {}, Exception('connection lost'))

    coordinator = BookingCoordinator(db, notifier=FailingNotifier(), clock=_clock)

    with pytest.raises(Unavailable):
        _book(coordinator, clinic, slots[0])

    assert _occupancy(db, slots[0]) == 0
    assert db.scalars(select(Appointment)).all() == []


def test_create_then_cancel_restores_slot(db, clinic, slots, coordinator) -> None:
    appointment = _book(coordinator, clinic, slots[0])

    canceled = coordinator.cancel(appointment.id, Actor(user_id=clinic.patient_user.id, role='patient'))

    assert canceled.status == 'canceled'
    assert _occupancy(db, slots[0]) == 0
    assert slots[0].is_available is True

    cancellation_recipients = sorted(
        n.user_id for n in db.scalars(select(Notification).where(Notification.type == 'appointment_cancellation'))
    )
    assert cancellation_recipients == sorted([clinic.patient_user.id, clinic.doctor_user.id])


def test_staff_cancellation_is_canceled_by_doctor(db, clinic, slots, coordinator) -> None:
    appointment = _book(coordinator, clinic, slots[0])

    canceled = coordinator.cancel(appointment.id, Actor(user_id=clinic.doctor_user.id, role='doctor'))

    assert canceled.status == 'canceled_by_doctor'
    assert _occupancy(db, slots[0]) == 0


def test_cancel_twice_fails_and_releases_once(db, clinic, slots, coordinator) -> None:
    appointment = _book(coordinator, clinic, slots[0])
    actor = Actor(user_id=clinic.patient_user.id, role='patient')
    coordinator.cancel(appointment.id, actor)
    _book(coordinator, clinic, slots[0], patient=clinic.other_patient)

    with pytest.raises(InvalidTransition):
        coordinator.cancel(appointment.id, actor)

    assert _occupancy(db, slots[0]) == 1


def test_cancel_completed_appointment_is_invalid(db, clinic, slots, coordinator) -> None:
    appointment = _book(coordinator, clinic, slots[0])
    coordinator.confirm(appointment.id)
    coordinator.mark_in_progress(appointment.id)
    coordinator.mark_completed(appointment.id)

    with pytest.raises(InvalidTransition):
        coordinator.cancel(appointment.id, Actor(user_id=clinic.patient_user.id, role='patient'))

    db.refresh(appointment)
    assert appointment.status == 'completed'
    assert _occupancy(db, slots[0]) == 1


def test_cancel_missing_appointment(db, clinic, coordinator) -> None:
    with pytest.raises(NotFound):
        coordinator.cancel(404, Actor(user_id=clinic.patient_user.id, role='patient'))


def test_status_transitions_follow_the_lifecycle(db, clinic, slots, coordinator) -> None:
    appointment = _book(coordinator, clinic, slots[0])

    with pytest.raises(InvalidTransition):
        coordinator.mark_completed(appointment.id)

    assert coordinator.mark_in_progress(appointment.id).status == 'in_progress'
    with pytest.raises(InvalidTransition):
        coordinator.mark_no_show(appointment.id)
    assert coordinator.mark_completed(appointment.id).status == 'completed'
    assert _occupancy(db, slots[0]) == 1


def test_no_show_releases_slot(db, clinic, slots, coordinator) -> None:
    appointment = _book(coordinator, clinic, slots[0])

    assert coordinator.mark_no_show(appointment.id).status == 'no_show'
    assert _occupancy(db, slots[0]) == 0


def test_reschedule_moves_reservation_and_keeps_history(db, clinic, slots, coordinator) -> None:
    original = _book(coordinator, clinic, slots[0])
    coordinator.confirm(original.id)

    moved = coordinator.reschedule(original.id, slots[1].id)

    db.refresh(original)
    assert original.status == 'rescheduled'
    assert moved.id != original.id
    assert moved.status == 'pending'
    assert moved.slot_id == slots[1].id
    assert moved.rescheduled_from_id == original.id
    assert moved.appointment_datetime == datetime(2026, 1, 5, 9, 30)
    assert moved.reason == 'Chest pain'
    assert [_occupancy(db, slot) for slot in slots] == [0, 1]


def test_reschedule_can_keep_confirmation(db, clinic, slots) -> None:
    coordinator = BookingCoordinator(db, clock=_clock, keeps_confirmation_on_reschedule=True)
    original = _book(coordinator, clinic, slots[0])
    coordinator.confirm(original.id)

    moved = coordinator.reschedule(original.id, slots[1].id)

    assert moved.status == 'confirmed'


def test_reschedule_to_full_slot_changes_nothing(db, clinic, slots, coordinator) -> None:
    original = _book(coordinator, clinic, slots[0])
    _book(coordinator, clinic, slots[1], patient=clinic.other_patient)

    with pytest.raises(Conflict):
        coordinator.reschedule(original.id, slots[1].id)

    db.refresh(original)
    assert original.status == 'pending'
    assert original.slot_id == slots[0].id
    assert [_occupancy(db, slot) for slot in slots] == [1, 1]
    assert len(db.scalars(select(Appointment)).all()) == 2


def test_reschedule_with_induced_reservation_failure_changes_nothing(db, clinic, slots, coordinator, monkeypatch) -> None:
    original = _book(coordinator, clinic, slots[0])

    def lose_race(slot_id):
        return ReservationResult.SLOT_FULL

    monkeypatch.setattr(coordinator.ledger, 'try_reserve', lose_race)

    with pytest.raises(Conflict):
        coordinator.reschedule(original.id, slots[1].id)

    db.refresh(original)
    assert original.status == 'pending'
    assert [_occupancy(db, slot) for slot in slots] == [1, 0]


def test_reschedule_storage_failure_after_release_rolls_back(db, clinic, slots, coordinator, monkeypatch) -> None:
    original = _book(coordinator, clinic, slots[0])

    def broken_emit(intent):
        raise OperationalError('INSERT INTO notifications', {}, Exception('disk full'))

    monkeypatch.setattr(coordinator.notifier, 'emit', broken_emit)

    with pytest.raises(Unavailable):
        coordinator.reschedule(original.id, slots[1].id)

    db.refresh(original)
    assert original.status == 'pending'
    assert [_occupancy(db, slot) for slot in slots] == [1, 0]
    assert len(db.scalars(select(Appointment)).all()) == 1


def test_reschedule_rejects_slot_of_another_doctor(db, clinic, slots, coordinator) -> None:
    other_doctor = Doctor(first_name='Jose', last_name='Lara', is_active=True)
    db.add(other_doctor)
    db.flush()
    db.add(AvailabilityWindow(doctor_id=other_doctor.id, day_of_week=1, start_time=time(11, 0), end_time=time(11, 30)))
    db.commit()
    SlotLedger(db).ensure_slots(other_doctor.id, MONDAY, MONDAY)
    db.commit()
    foreign_slot = db.scalars(select(Slot).where(Slot.doctor_id == other_doctor.id)).one()
    original = _book(coordinator, clinic, slots[0])

    with pytest.raises(NotFound):
        coordinator.reschedule(original.id, foreign_slot.id)

    assert _occupancy(db, foreign_slot) == 0


def test_reschedule_of_terminal_appointment_is_invalid(db, clinic, slots, coordinator) -> None:
    original = _book(coordinator, clinic, slots[0])
    coordinator.cancel(original.id, Actor(user_id=clinic.patient_user.id, role='patient'))

    with pytest.raises(InvalidTransition):
        coordinator.reschedule(original.id, slots[1].id)

    assert [_occupancy(db, slot) for slot in slots] == [0, 0]


def test_rescheduled_appointment_can_be_rescheduled_again_from_new_row(db, clinic, slots, coordinator) -> None:
    original = _book(coordinator, clinic, slots[0])
    moved = coordinator.reschedule(original.id, slots[1].id)

    with pytest.raises(InvalidTransition):
        coordinator.reschedule(original.id, slots[0].id)

    back = coordinator.reschedule(moved.id, slots[0].id)

    assert back.rescheduled_from_id == moved.id
    assert [_occupancy(db, slot) for slot in slots] == [1, 0]
    assert back.created_at == FIXED_NOW


def test_reschedule_onto_slot_that_already_started_changes_nothing(db, clinic, slots, coordinator) -> None:
    original = _book(coordinator, clinic, slots[1])
    late = BookingCoordinator(db, clock=lambda: datetime(2026, 1, 5, 9, 10))

    with pytest.raises(Conflict):
        late.reschedule(original.id, slots[0].id)

    db.refresh(original)
    assert original.status == 'pending'
    assert [_occupancy(db, slot) for slot in slots] == [0, 1]
    assert len(db.scalars(select(Appointment)).all()) == 1

import pytest

from clinic_scheduler.core.errors import InvalidTransition
from clinic_scheduler.scheduling.state_machine import (
    TERMINAL_STATUSES,
    AppointmentStatus,
    can_transition,
    cancellation_status_for,
    check_transition,
    releases_slot,
)


@pytest.mark.parametrize(
    ('current', 'target'),
    [
        ('pending', 'confirmed'),
        ('pending', 'in_progress'),
        ('confirmed', 'in_progress'),
        ('in_progress', 'completed'),
        ('pending', 'canceled'),
        ('confirmed', 'canceled_by_doctor'),
        ('confirmed', 'no_show'),
        ('pending', 'rescheduled'),
    ],
)
def test_legal_transitions(current: str, target: str) -> None:
    assert can_transition(current, target)
    assert check_transition(current, target) == AppointmentStatus(target)


@pytest.mark.parametrize(
    ('current', 'target'),
    [
        ('confirmed', 'pending'),
        ('confirmed', 'confirmed'),
        ('in_progress', 'canceled'),
        ('in_progress', 'no_show'),
        ('completed', 'canceled'),
        ('canceled', 'confirmed'),
        ('no_show', 'completed'),
        ('rescheduled', 'pending'),
        ('pending', 'completed'),
        ('pending', 'unknown'),
    ],
)
def test_illegal_transitions_raise(current: str, target: str) -> None:
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransition):
        check_transition(current, target)


def test_terminal_statuses_have_no_exits() -> None:
    for terminal in TERMINAL_STATUSES:
        for target in AppointmentStatus:
            assert not can_transition(terminal.value, target.value)


def test_releasing_transitions() -> None:
    assert releases_slot('canceled')
    assert releases_slot('canceled_by_doctor')
    assert releases_slot('no_show')
    assert releases_slot('rescheduled')
    assert not releases_slot('confirmed')
    assert not releases_slot('completed')


@pytest.mark.parametrize(
    ('role', 'expected'),
    [
        ('patient', AppointmentStatus.CANCELED),
        (' Patient ', AppointmentStatus.CANCELED),
        ('doctor', AppointmentStatus.CANCELED_BY_DOCTOR),
        ('admin', AppointmentStatus.CANCELED_BY_DOCTOR),
        ('center_admin', AppointmentStatus.CANCELED_BY_DOCTOR),
    ],
)
def test_cancellation_status_depends_on_role(role: str, expected: AppointmentStatus) -> None:
    assert cancellation_status_for(role) is expected


def test_cancellation_rejects_unknown_role() -> None:
    with pytest.raises(InvalidTransition):
        cancellation_status_for('visitor')

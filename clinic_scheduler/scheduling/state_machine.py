"""Appointment status rules."""

import enum

from clinic_scheduler.core.errors import InvalidTransition


class AppointmentStatus(str, enum.Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELED = 'canceled'
    CANCELED_BY_DOCTOR = 'canceled_by_doctor'
    NO_SHOW = 'no_show'
    RESCHEDULED = 'rescheduled'


INITIAL_STATUS = AppointmentStatus.PENDING

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELED,
    AppointmentStatus.CANCELED_BY_DOCTOR,
    AppointmentStatus.NO_SHOW,
})

# A rescheduled row has been superseded by a new one and never moves again.
CLOSED_STATUSES = TERMINAL_STATUSES | {AppointmentStatus.RESCHEDULED}

ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELED,
        AppointmentStatus.CANCELED_BY_DOCTOR,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELED,
        AppointmentStatus.CANCELED_BY_DOCTOR,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    }),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
}

# Transitions that give the slot's capacity back.
RELEASING_STATUSES = frozenset({
    AppointmentStatus.CANCELED,
    AppointmentStatus.CANCELED_BY_DOCTOR,
    AppointmentStatus.NO_SHOW,
    AppointmentStatus.RESCHEDULED,
})

PATIENT_ROLES = frozenset({'patient'})
STAFF_ROLES = frozenset({'doctor', 'admin', 'center_admin'})


def can_transition(current: str, target: str) -> bool:
    try:
        current_status = AppointmentStatus(current)
        target_status = AppointmentStatus(target)
    except ValueError:
        return False
    return target_status in ALLOWED_TRANSITIONS.get(current_status, frozenset())


def check_transition(current: str, target: str) -> AppointmentStatus:
    """Return the target status, or raise InvalidTransition."""
    if not can_transition(current, target):
        raise InvalidTransition(f'Cannot move appointment from {current} to {target}.')
    return AppointmentStatus(target)


def releases_slot(target: str) -> bool:
    return AppointmentStatus(target) in RELEASING_STATUSES


def cancellation_status_for(role: str) -> AppointmentStatus:
    """Patients cancel with ``canceled``; doctors and admins with ``canceled_by_doctor``."""
    normalized = (role or '').strip().lower()
    if normalized in PATIENT_ROLES:
        return AppointmentStatus.CANCELED
    if normalized in STAFF_ROLES:
        return AppointmentStatus.CANCELED_BY_DOCTOR
    raise InvalidTransition(f'Role {role!r} cannot cancel appointments.')

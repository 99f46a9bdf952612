from enum import Enum


class AppointmentStatus(str, Enum):
    INQUIRY = 'inquiry'
    SCHEDULED = 'scheduled'
    CONFIRMED = 'confirmed'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no_show'


class AppointmentType(str, Enum):
    CONSULTATION = 'consultation'
    CLEANING = 'cleaning'
    PROCEDURE = 'procedure'
    FOLLOWUP = 'followup'
    EMERGENCY = 'emergency'


# Statuses that occupy the provider's time for conflict purposes.
RESERVING_STATUSES = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
})

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})

INITIAL_STATUSES = frozenset({
    AppointmentStatus.INQUIRY,
    AppointmentStatus.SCHEDULED,
})

RESERVING_STATUS_VALUES = tuple(sorted(status.value for status in RESERVING_STATUSES))

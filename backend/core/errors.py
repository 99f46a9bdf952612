"""Typed errors raised by the scheduling core.

Every error carries a ``kind`` discriminator so callers can branch on it
without parsing messages, plus JSON-safe context returned by ``to_dict``.
"""

from typing import Any


class SchedulingError(Exception):
    kind = 'scheduling_error'
    retryable = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {'kind': self.kind, 'message': self.message, **self.context}


class ValidationError(SchedulingError):
    """Malformed or missing input. Never retried; the caller must correct it."""

    kind = 'validation_error'


class InvalidInputError(ValidationError):
    """A date or time string could not be read."""

    kind = 'invalid_input'


class InvalidWindowError(SchedulingError):
    kind = 'invalid_window'


class OutsideAvailabilityError(SchedulingError):
    """The slot is not inside the provider's open hours.

    ``window`` holds the provider's window for that weekday so the caller can
    suggest alternatives.
    """

    kind = 'outside_availability'


class SlotConflictError(SchedulingError):
    """Another reserving appointment overlaps the slot.

    Only the conflicting interval is exposed, never the other patient.
    """

    kind = 'slot_conflict'


class IllegalTransitionError(SchedulingError):
    kind = 'illegal_transition'

    def __init__(self, current_status: str, requested_status: str, allowed: list[str] | None = None) -> None:
        super().__init__(
            f"Cannot move appointment from '{current_status}' to '{requested_status}'.",
            current_status=current_status,
            requested_status=requested_status,
            allowed=sorted(allowed or []),
        )
        self.current_status = current_status
        self.requested_status = requested_status


class ContendedSlotError(SchedulingError):
    kind = 'contended_slot'
    retryable = True


class AppointmentNotFoundError(SchedulingError):
    kind = 'appointment_not_found'

"""Typed exceptions for scheduling and workshop operations."""

from datetime import date, time
from typing import Iterable


class SchedulingError(Exception):
    """Base class for all domain failures."""


class ValidationError(SchedulingError):
    """
    Input failed a field constraint.

    Raised before any store call, so nothing is partially written.
    """

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(SchedulingError):
    """Referenced record does not exist (or is invisible to the caller)."""


class AuthorizationDenied(SchedulingError):
    """
    Caller may not perform the action on this resource.

    Distinct from NotFoundError so the HTTP layer can answer 403, not 404.
    """

    def __init__(self, action: str, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"Not allowed to {action}: {reason}")


class SlotUnavailable(SchedulingError):
    """
    The store refused an insert because another active appointment holds the slot.

    Internal: the booking flow retries through the resolver.
    """

    def __init__(self, appointment_date: date, appointment_time: time):
        self.appointment_date = appointment_date
        self.appointment_time = appointment_time
        super().__init__(
            f"Slot {appointment_date.isoformat()} {appointment_time.strftime('%H:%M')} is taken"
        )


class NoSlotAvailable(SchedulingError):
    """Resolver exhausted its probe budget or hit closing time."""

    def __init__(self, appointment_date: date, requested_time: time, message: str | None = None):
        self.appointment_date = appointment_date
        self.requested_time = requested_time
        super().__init__(
            message or "No available time slots for this date. Please try a different date."
        )


class InvalidTransitionError(SchedulingError):
    """Status change not allowed by the lifecycle graph."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class AssignmentIncomplete(SchedulingError):
    """An assign action is missing technician, task description or duration."""

    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(missing)
        super().__init__(
            f"Please fill in all assignment fields (missing: {', '.join(self.missing)})"
        )


class PersistenceFailure(SchedulingError):
    """The underlying store failed. The caller keeps their input and may retry."""

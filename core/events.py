"""
Domain events for the shop.

Immutable event objects that represent state changes in scheduling.
Events enable loose coupling between services: a service publishes what
happened, and handlers react without the publisher knowing who's listening.

Event Categories:
- AppointmentEvent: Appointment lifecycle (book, approve, reject, start, complete)
- TaskEvent: Task ledger (assign, status change)
- ProfileEvent: Technician account approval

Events carry the full domain object so handlers don't need to re-fetch state.
They are published only after the write they describe has committed.
"""

from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class ShopEvent:
    """Base class for all domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# APPOINTMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class AppointmentEvent(ShopEvent):
    """Events related to appointment lifecycle."""
    appointment: Any = None  # Appointment, Any avoids a circular import


@dataclass(frozen=True)
class AppointmentBooked(AppointmentEvent):
    """A customer booked. Status is approved or pending depending on booking mode."""
    requested_time: time | None = None
    was_rescheduled: bool = False

    @classmethod
    def create(cls, appointment: Any, requested_time: time, was_rescheduled: bool) -> "AppointmentBooked":
        return cls(appointment=appointment, requested_time=requested_time, was_rescheduled=was_rescheduled)


@dataclass(frozen=True)
class AppointmentApproved(AppointmentEvent):
    """Admin moved a pending appointment to approved."""

    @classmethod
    def create(cls, appointment: Any) -> "AppointmentApproved":
        return cls(appointment=appointment)


@dataclass(frozen=True)
class AppointmentRejected(AppointmentEvent):
    """Admin rejected a pending appointment. The slot is free again."""

    @classmethod
    def create(cls, appointment: Any) -> "AppointmentRejected":
        return cls(appointment=appointment)


@dataclass(frozen=True)
class AppointmentStarted(AppointmentEvent):
    """Assigned technician started work."""

    @classmethod
    def create(cls, appointment: Any) -> "AppointmentStarted":
        return cls(appointment=appointment)


@dataclass(frozen=True)
class AppointmentCompleted(AppointmentEvent):
    """Appointment completed, along with every one of its tasks."""
    tasks: tuple = ()

    @classmethod
    def create(cls, appointment: Any, tasks: list) -> "AppointmentCompleted":
        return cls(appointment=appointment, tasks=tuple(tasks))


# =============================================================================
# TASK EVENTS
# =============================================================================


@dataclass(frozen=True)
class TaskEvent(ShopEvent):
    """Events related to the task ledger."""
    task: Any = None


@dataclass(frozen=True)
class TaskAssigned(TaskEvent):
    """Admin assigned a technician, creating a task on the appointment."""
    appointment: Any = None
    technician_name: str | None = None

    @classmethod
    def create(cls, task: Any, appointment: Any, technician_name: str | None) -> "TaskAssigned":
        return cls(task=task, appointment=appointment, technician_name=technician_name)


@dataclass(frozen=True)
class TaskStatusChanged(TaskEvent):
    """A task moved forward in its lifecycle."""
    previous_status: Any = None

    @classmethod
    def create(cls, task: Any, previous_status: Any) -> "TaskStatusChanged":
        return cls(task=task, previous_status=previous_status)


# =============================================================================
# PROFILE EVENTS
# =============================================================================


@dataclass(frozen=True)
class ProfileEvent(ShopEvent):
    """Events related to accounts."""
    profile: Any = None


@dataclass(frozen=True)
class TechnicianApproved(ProfileEvent):
    """Admin approved a technician account."""

    @classmethod
    def create(cls, profile: Any) -> "TechnicianApproved":
        return cls(profile=profile)


@dataclass(frozen=True)
class TechnicianRevoked(ProfileEvent):
    """Admin withdrew a technician's approval."""

    @classmethod
    def create(cls, profile: Any) -> "TechnicianRevoked":
        return cls(profile=profile)

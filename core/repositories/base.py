"""
Repository interfaces the services depend on.

Every method returns freshly built records; callers never hold a reference
that silently tracks storage. Appointments own their tasks, so the two writes
that must land together (assignment and cascading completion) are aggregate
operations on AppointmentRepository.
"""

from datetime import date, time
from typing import Any, Protocol
from uuid import UUID

from core.audit import AuditStore
from core.models import (
    Appointment, AppointmentCreate, AppointmentStatus, AppointmentWithParticipants,
    Profile, ProfileCreate, Task, TaskCreate, TaskStatus,
)


class ProfileRepository(Protocol):

    def create(self, data: ProfileCreate, is_approved: bool) -> Profile:
        """Insert a profile. Raises ValueError if the user already has one."""
        ...

    def get_by_user_id(self, user_id: UUID) -> Profile | None: ...

    def update(self, user_id: UUID, fields: dict[str, Any]) -> Profile:
        """Write the given columns. Raises NotFoundError if missing."""
        ...

    def list_technicians(self, approved: bool | None = None) -> list[Profile]:
        """Technician profiles ordered by name, optionally by approval flag."""
        ...


class AppointmentRepository(Protocol):

    def create(self, data: AppointmentCreate) -> Appointment:
        """
        Insert an appointment.

        Raises SlotUnavailable if data is pending/approved and another
        pending/approved appointment already holds the same date and time.
        """
        ...

    def get(self, appointment_id: UUID) -> Appointment | None: ...

    def update(
        self,
        appointment_id: UUID,
        fields: dict[str, Any],
        expected: frozenset[AppointmentStatus] | None = None,
    ) -> Appointment:
        """
        Write the given columns.

        Args:
            expected: If given, the row's status at write time must be one
                of these, otherwise InvalidTransitionError

        Raises:
            NotFoundError, SlotUnavailable, InvalidTransitionError
        """
        ...

    def slot_taken(self, appointment_date: date, appointment_time: time) -> bool:
        """True if any pending or approved appointment holds exactly this slot.

        Answers for every customer's bookings, not only those the caller
        may read.
        """
        ...

    def list_for_customer(self, customer_id: UUID, limit: int = 50) -> list[Appointment]:
        """Newest first."""
        ...

    def list_for_technician(self, technician_id: UUID, limit: int = 50) -> list[Appointment]:
        """By date and time ascending."""
        ...

    def list_with_participants(
        self,
        status: AppointmentStatus | None = None,
        customer_id: UUID | None = None,
        technician_id: UUID | None = None,
        limit: int = 100,
    ) -> list[AppointmentWithParticipants]:
        """Appointments joined with customer/technician names and tasks, newest first."""
        ...

    def assign_technician(
        self,
        appointment_id: UUID,
        fields: dict[str, Any],
        task: TaskCreate,
        expected: frozenset[AppointmentStatus],
    ) -> tuple[Appointment, Task]:
        """Write appointment fields and insert the task as one unit."""
        ...

    def complete(
        self,
        appointment_id: UUID,
        expected: frozenset[AppointmentStatus],
    ) -> tuple[Appointment, list[Task]]:
        """Mark the appointment and every one of its tasks completed as one unit."""
        ...


class TaskRepository(Protocol):

    def get(self, task_id: UUID) -> Task | None: ...

    def list_for_appointment(self, appointment_id: UUID) -> list[Task]:
        """Oldest first."""
        ...

    def list_for_technician(self, technician_id: UUID, status: TaskStatus | None = None) -> list[Task]:
        """Newest first."""
        ...

    def update_status(
        self,
        task_id: UUID,
        status: TaskStatus,
        expected: TaskStatus | None = None,
    ) -> Task:
        """
        Set the status.

        Raises:
            NotFoundError, InvalidTransitionError (status moved underneath)
        """
        ...

    def list_all(self, status: TaskStatus | None = None, limit: int = 200) -> list[Task]:
        """Every task, newest first. Admin view."""
        ...


class Store(Protocol):
    """The repositories a service set is built on."""

    profiles: ProfileRepository
    appointments: AppointmentRepository
    tasks: TaskRepository
    audit: AuditStore

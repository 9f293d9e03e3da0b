"""
Task ledger for technician work orders.

An admin assignment creates a task on an appointment and, when the
appointment is still pending, approves it in the same write. Technicians
then move their tasks forward one step at a time:

    assigned -> in_progress -> completed

Task changes never move the appointment. Completing an appointment
completes its tasks, which is AppointmentService.complete.
"""

import logging
from uuid import UUID

from core.audit import AuditAction, AuditLogger, compute_changes
from core.authorization import Action, require
from core.errors import (
    AssignmentIncomplete, AuthorizationDenied, InvalidTransitionError, NotFoundError,
    ValidationError,
)
from core.event_bus import EventBus
from core.events import AppointmentApproved, TaskAssigned, TaskStatusChanged
from core.models import (
    Appointment, AppointmentStatus, AssignmentRequest, Profile, Task, TaskCounts,
    TaskCreate, TaskStatus, TASK_TRANSITIONS,
)
from core.repositories.base import Store

logger = logging.getLogger(__name__)


class TaskService:
    """Service for task operations."""

    def __init__(self, store: Store, audit: AuditLogger, bus: EventBus):
        self.appointments = store.appointments
        self.profiles = store.profiles
        self.tasks = store.tasks
        self.audit = audit
        self.bus = bus

    def assign(self, caller: Profile, request: AssignmentRequest) -> Task:
        """
        Assign a technician to an appointment by creating a task.

        A pending appointment becomes approved with the technician and
        estimate set. An approved appointment takes the technician if it has
        none, or another task for the technician it already has.

        Args:
            caller: Must be an admin
            request: Assignment form

        Returns:
            The new task in ASSIGNED status

        Raises:
            AuthorizationDenied: Caller is not an admin
            AssignmentIncomplete: Technician, description or duration missing
            NotFoundError: Appointment does not exist
            ValidationError: Technician is not an approved technician
            InvalidTransitionError: Appointment is in no state to take the assignment
        """
        require(caller, Action.ASSIGN_TECHNICIAN)

        missing = request.missing_fields()
        if missing:
            raise AssignmentIncomplete(missing)

        current = self.appointments.get(request.appointment_id)
        if current is None:
            raise NotFoundError(f"Appointment {request.appointment_id} not found")

        technician = self.profiles.get_by_user_id(request.technician_id)
        if technician is None or not technician.is_active_technician:
            raise ValidationError(
                "Please select an approved technician",
                field="technician_id"
            )

        fields, expected = self._assignment_fields(current, request)
        task_data = TaskCreate(
            appointment_id=current.id,
            technician_id=technician.user_id,
            task_description=request.task_description.strip(),
            estimated_duration_hours=request.estimated_duration_hours,
        )
        appointment, task = self.appointments.assign_technician(current.id, fields, task_data, expected)

        changes = compute_changes(current.model_dump(mode="json"), appointment.model_dump(mode="json"))
        if changes:
            self.audit.log_change(
                entity_type="appointment",
                entity_id=appointment.id,
                action=AuditAction.UPDATE,
                changes=changes
            )
        self.audit.log_change(
            entity_type="task",
            entity_id=task.id,
            action=AuditAction.CREATE,
            changes={"created": task.model_dump(mode="json")}
        )

        logger.info(
            "Assigned technician %s to appointment %s (task %s)",
            technician.user_id, appointment.id, task.id
        )
        if current.status == AppointmentStatus.PENDING:
            self.bus.publish(AppointmentApproved.create(appointment))
        self.bus.publish(TaskAssigned.create(task, appointment, technician.full_name))
        return task

    @staticmethod
    def _assignment_fields(
        current: Appointment,
        request: AssignmentRequest
    ) -> tuple[dict, frozenset[AppointmentStatus]]:
        fields = {"technician_id": request.technician_id}
        if request.admin_notes and request.admin_notes.strip():
            fields["admin_notes"] = request.admin_notes.strip()

        if current.status == AppointmentStatus.PENDING:
            fields["status"] = AppointmentStatus.APPROVED
            fields["estimated_duration_hours"] = request.estimated_duration_hours
            return fields, frozenset({AppointmentStatus.PENDING})

        if current.status == AppointmentStatus.APPROVED:
            if current.technician_id is None:
                fields["estimated_duration_hours"] = request.estimated_duration_hours
                return fields, frozenset({AppointmentStatus.APPROVED})
            if current.technician_id == request.technician_id:
                # Another task for the same technician; the estimate covers all of them
                fields["estimated_duration_hours"] = (
                    (current.estimated_duration_hours or 0) + request.estimated_duration_hours
                )
                return fields, frozenset({AppointmentStatus.APPROVED})

        raise InvalidTransitionError("appointment", current.status.value, AppointmentStatus.APPROVED.value)

    def get(self, caller: Profile, task_id: UUID) -> Task:
        """
        Raises:
            NotFoundError, AuthorizationDenied
        """
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        require(caller, Action.VIEW_TASKS, task)
        return task

    def update_status(self, caller: Profile, task_id: UUID, status: TaskStatus | str) -> Task:
        """
        Move a task one step forward.

        Setting the status a task already has is a no-op.

        Raises:
            NotFoundError, AuthorizationDenied,
            ValidationError: Unknown status value
            InvalidTransitionError: Regression or skipped step
        """
        try:
            target = TaskStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown task status '{status}'", field="status") from e

        current = self.tasks.get(task_id)
        if current is None:
            raise NotFoundError(f"Task {task_id} not found")
        require(caller, Action.UPDATE_TASK_STATUS, current)

        if current.status == target:
            return current
        if target not in TASK_TRANSITIONS[current.status]:
            raise InvalidTransitionError("task", current.status.value, target.value)

        updated = self.tasks.update_status(task_id, target, expected=current.status)

        self.audit.log_change(
            entity_type="task",
            entity_id=task_id,
            action=AuditAction.UPDATE,
            changes={"status": {"old": current.status.value, "new": target.value}}
        )
        logger.info("Task %s moved %s -> %s", task_id, current.status.value, target.value)
        self.bus.publish(TaskStatusChanged.create(updated, current.status))
        return updated

    def list_for_caller(self, caller: Profile, status: TaskStatus | None = None) -> list[Task]:
        """
        A technician's own tasks, or every task for an admin. Newest first.

        Raises:
            AuthorizationDenied: Customers, and technicians awaiting approval
        """
        require(caller, Action.VIEW_TASKS)
        if caller.is_admin:
            return self.tasks.list_all(status)
        if not caller.is_approved:
            raise AuthorizationDenied(Action.VIEW_TASKS.value, "technician account is awaiting admin approval")
        return self.tasks.list_for_technician(caller.user_id, status)

    def list_for_appointment(self, caller: Profile, appointment_id: UUID) -> list[Task]:
        """
        Tasks on one appointment, oldest first.

        Admins see all of them; a technician sees only their own.
        """
        require(caller, Action.VIEW_TASKS)
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")

        tasks = self.tasks.list_for_appointment(appointment_id)
        if caller.is_admin:
            return tasks
        return [task for task in tasks if task.technician_id == caller.user_id]

    def summary_for_technician(self, caller: Profile, technician_id: UUID | None = None) -> TaskCounts:
        """Dashboard counts per status. Defaults to the caller's own tasks."""
        technician_id = technician_id or caller.user_id
        require(caller, Action.VIEW_TASKS)
        if technician_id != caller.user_id and not caller.is_admin:
            raise AuthorizationDenied(Action.VIEW_TASKS.value, "task is assigned to another technician")
        if not caller.is_admin and not caller.is_approved:
            raise AuthorizationDenied(Action.VIEW_TASKS.value, "technician account is awaiting admin approval")

        counts = TaskCounts()
        for task in self.tasks.list_for_technician(technician_id):
            setattr(counts, task.status.value, getattr(counts, task.status.value) + 1)
        return counts

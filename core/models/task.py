"""Task (technician work order) domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Work order progress."""

    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# Forward-only, one step at a time.
TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.ASSIGNED: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
}


class TaskCreate(BaseModel):
    """Data required to create a task row."""

    appointment_id: UUID
    technician_id: UUID
    task_description: str = Field(..., min_length=1)
    estimated_duration_hours: float = Field(..., gt=0)


class AssignmentRequest(BaseModel):
    """
    Admin assignment form.

    Everything is optional at parse time so a half-filled form can be
    reported as AssignmentIncomplete instead of a generic type error.
    """

    appointment_id: UUID
    technician_id: UUID | None = None
    task_description: str | None = None
    estimated_duration_hours: float | None = Field(None, gt=0)
    admin_notes: str | None = None

    def missing_fields(self) -> set[str]:
        missing = set()
        if self.technician_id is None:
            missing.add("technician_id")
        if not (self.task_description or "").strip():
            missing.add("task_description")
        if self.estimated_duration_hours is None:
            missing.add("estimated_duration_hours")
        return missing


class Task(BaseModel):
    """Full task as stored."""

    id: UUID
    appointment_id: UUID
    technician_id: UUID
    task_description: str
    estimated_duration_hours: float
    status: TaskStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_open(self) -> bool:
        return self.status != TaskStatus.COMPLETED


class TaskSummary(BaseModel):
    """Task fields shown alongside an appointment."""

    id: UUID
    task_description: str
    estimated_duration_hours: float
    status: TaskStatus

    model_config = {"from_attributes": True}


class TaskCounts(BaseModel):
    """Per-technician dashboard tallies."""

    assigned: int = 0
    in_progress: int = 0
    completed: int = 0

    @property
    def total(self) -> int:
        return self.assigned + self.in_progress + self.completed

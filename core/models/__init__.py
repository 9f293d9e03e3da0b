"""Core domain models."""

from core.models.profile import Profile, ProfileCreate, ProfileUpdate, Role, SELF_EDITABLE_FIELDS
from core.models.task import (
    Task, TaskCreate, TaskStatus, TaskSummary, TaskCounts,
    AssignmentRequest, TASK_TRANSITIONS,
)
from core.models.appointment import (
    Appointment, AppointmentCreate, AppointmentUpdate, AppointmentStatus, AppointmentWithParticipants,
    BookingRequest, BookingResult,
    ACTIVE_STATUSES, APPOINTMENT_TRANSITIONS, CUSTOMER_EDITABLE_FIELDS,
)

__all__ = [
    # Profile
    "Profile", "ProfileCreate", "ProfileUpdate", "Role", "SELF_EDITABLE_FIELDS",
    # Task
    "Task", "TaskCreate", "TaskStatus", "TaskSummary", "TaskCounts",
    "AssignmentRequest", "TASK_TRANSITIONS",
    # Appointment
    "Appointment", "AppointmentCreate", "AppointmentUpdate", "AppointmentStatus", "AppointmentWithParticipants",
    "BookingRequest", "BookingResult",
    "ACTIVE_STATUSES", "APPOINTMENT_TRANSITIONS", "CUSTOMER_EDITABLE_FIELDS",
]

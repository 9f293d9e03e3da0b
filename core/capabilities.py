"""
Role capability sets.

Each role gets an object bound to the caller that exposes only the
operations that role may invoke. The gate in core.authorization still
decides every call, so an unapproved technician holds a
TechnicianCapabilities whose operations are refused.
"""

from datetime import date, time
from uuid import UUID

from core.models import (
    Appointment, AppointmentStatus, AppointmentUpdate, AppointmentWithParticipants,
    AssignmentRequest, BookingRequest, BookingResult, Profile, ProfileUpdate, Role, Task,
    TaskCounts, TaskStatus,
)
from core.services import Services


class _Capabilities:
    """Operations every signed-in role has."""

    role: Role

    def __init__(self, caller: Profile, services: Services):
        self.caller = caller
        self.services = services

    def operations(self) -> frozenset[str]:
        """Public operation names, for the actions endpoint to check against."""
        return frozenset(
            name for name in dir(self)
            if not name.startswith("_") and name not in ("operations", "caller", "services", "role")
            and callable(getattr(self, name))
        )

    def my_profile(self) -> Profile:
        return self.caller

    def update_my_profile(self, data: ProfileUpdate) -> Profile:
        return self.services.profiles.update(self.caller, self.caller.user_id, data)

    def get_appointment(self, appointment_id: UUID) -> Appointment:
        return self.services.appointments.get(self.caller, appointment_id)

    def list_appointments(
        self,
        status: AppointmentStatus | None = None,
        limit: int = 100
    ) -> list[AppointmentWithParticipants]:
        return self.services.appointments.list_with_participants(self.caller, status, limit)


class CustomerCapabilities(_Capabilities):
    role = Role.CUSTOMER

    def book(self, request: BookingRequest | dict) -> BookingResult:
        return self.services.appointments.book(self.caller, request)

    def update_appointment(self, appointment_id: UUID, data: AppointmentUpdate) -> Appointment:
        return self.services.appointments.update(self.caller, appointment_id, data)

    def check_slot(self, appointment_date: date, appointment_time: time | str) -> bool:
        return self.services.appointments.check_slot(appointment_date, appointment_time)

    def available_slots(self, appointment_date: date) -> list[time]:
        return self.services.appointments.available_slots(appointment_date)

    def list_technicians(self) -> list[Profile]:
        """Approved technicians, for the preferred-technician picker."""
        return self.services.profiles.list_technicians(approved=True)


class TechnicianCapabilities(_Capabilities):
    role = Role.TECHNICIAN

    def start(self, appointment_id: UUID) -> Appointment:
        return self.services.appointments.start(self.caller, appointment_id)

    def complete(self, appointment_id: UUID) -> Appointment:
        return self.services.appointments.complete(self.caller, appointment_id)

    def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        return self.services.tasks.list_for_caller(self.caller, status)

    def update_task_status(self, task_id: UUID, status: TaskStatus | str) -> Task:
        return self.services.tasks.update_status(self.caller, task_id, status)

    def task_summary(self) -> TaskCounts:
        return self.services.tasks.summary_for_technician(self.caller)


class AdminCapabilities(_Capabilities):
    role = Role.ADMIN

    def update_appointment(self, appointment_id: UUID, data: AppointmentUpdate) -> Appointment:
        return self.services.appointments.update(self.caller, appointment_id, data)

    def approve(self, appointment_id: UUID, assignment: AssignmentRequest | None = None) -> Appointment:
        return self.services.appointments.approve(self.caller, appointment_id, assignment)

    def reject(self, appointment_id: UUID, reason: str) -> Appointment:
        return self.services.appointments.reject(self.caller, appointment_id, reason)

    def assign(self, request: AssignmentRequest) -> Task:
        return self.services.tasks.assign(self.caller, request)

    def complete(self, appointment_id: UUID) -> Appointment:
        return self.services.appointments.complete(self.caller, appointment_id)

    def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        return self.services.tasks.list_for_caller(self.caller, status)

    def list_tasks_for_appointment(self, appointment_id: UUID) -> list[Task]:
        return self.services.tasks.list_for_appointment(self.caller, appointment_id)

    def update_task_status(self, task_id: UUID, status: TaskStatus | str) -> Task:
        return self.services.tasks.update_status(self.caller, task_id, status)

    def task_summary(self, technician_id: UUID) -> TaskCounts:
        return self.services.tasks.summary_for_technician(self.caller, technician_id)

    def list_technicians(self, approved: bool | None = None) -> list[Profile]:
        return self.services.profiles.list_technicians(approved)

    def approve_technician(self, user_id: UUID) -> Profile:
        return self.services.profiles.approve_technician(self.caller, user_id)

    def revoke_technician(self, user_id: UUID) -> Profile:
        return self.services.profiles.revoke_technician(self.caller, user_id)

    def get_profile(self, user_id: UUID) -> Profile:
        return self.services.profiles.get(self.caller, user_id)

    def update_profile(self, user_id: UUID, data: ProfileUpdate) -> Profile:
        return self.services.profiles.update(self.caller, user_id, data)

    def check_slot(self, appointment_date: date, appointment_time: time | str) -> bool:
        return self.services.appointments.check_slot(appointment_date, appointment_time)

    def available_slots(self, appointment_date: date) -> list[time]:
        return self.services.appointments.available_slots(appointment_date)


Capabilities = CustomerCapabilities | TechnicianCapabilities | AdminCapabilities

_BY_ROLE: dict[Role, type[_Capabilities]] = {
    Role.CUSTOMER: CustomerCapabilities,
    Role.TECHNICIAN: TechnicianCapabilities,
    Role.ADMIN: AdminCapabilities,
}


def capabilities_for(caller: Profile, services: Services) -> Capabilities:
    """The capability set for the caller's role."""
    return _BY_ROLE[caller.role](caller, services)

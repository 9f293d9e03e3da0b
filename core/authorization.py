"""
Role and approval gate.

Pure decisions over a caller profile, an action and the resource's ownership
fields. Mirrors the store's row-level policies so a denial is reported before
the store is asked, with a reason the caller can act on:

- Appointments: owner customer, assigned technician or admin may read; only
  customers insert, as themselves; customers update only their own pending
  appointments; approved technicians update status only while assigned;
  admins update anything.
- Tasks: assigned technician or admin may read; admins write anything;
  approved technicians update only their own tasks.
- Profiles: self or admin may read; self updates name and phone; admins
  update any field.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable
from uuid import UUID

from core.errors import AuthorizationDenied
from core.models import (
    Appointment, AppointmentStatus, Profile, Role, Task,
    CUSTOMER_EDITABLE_FIELDS, SELF_EDITABLE_FIELDS,
)


class Action(str, Enum):
    """Protected operations."""

    CREATE_APPOINTMENT = "create-appointment"
    VIEW_APPOINTMENT = "view-appointment"
    UPDATE_APPOINTMENT = "update-appointment"
    UPDATE_APPOINTMENT_STATUS = "update-appointment-status"
    ASSIGN_TECHNICIAN = "assign-technician"
    APPROVE_ANY = "approve-any"
    APPROVE_TECHNICIAN = "approve-technician"
    VIEW_TASKS = "view-tasks"
    UPDATE_TASK_STATUS = "update-task-status"
    VIEW_PROFILE = "view-profile"
    UPDATE_PROFILE = "update-profile"


@dataclass(frozen=True)
class Decision:
    """Allow or deny, with the reason for a denial."""

    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def _deny(reason: str) -> Decision:
    return Decision(False, reason)


def _is_assigned_technician(caller: Profile, technician_id: UUID | None) -> Decision:
    if caller.role != Role.TECHNICIAN:
        return _deny("only the assigned technician may do this")
    if not caller.is_approved:
        return _deny("technician account is awaiting admin approval")
    if technician_id is None or technician_id != caller.user_id:
        return _deny("you are not the assigned technician")
    return ALLOW


def _admin_only(caller: Profile, resource, fields) -> Decision:
    if caller.is_admin:
        return ALLOW
    return _deny("admin role required")


def _create_appointment(caller: Profile, resource: Appointment | None, fields) -> Decision:
    if caller.role != Role.CUSTOMER:
        return _deny("only customers can book appointments")
    if resource is not None and resource.customer_id != caller.user_id:
        return _deny("customers can only book for themselves")
    return ALLOW


def _view_appointment(caller: Profile, resource: Appointment, fields) -> Decision:
    if caller.is_admin:
        return ALLOW
    if resource.customer_id == caller.user_id:
        return ALLOW
    if resource.technician_id is not None and resource.technician_id == caller.user_id:
        return ALLOW
    return _deny("appointment belongs to another customer")


def _update_appointment_status(caller: Profile, resource: Appointment, fields) -> Decision:
    if caller.is_admin:
        return ALLOW
    return _is_assigned_technician(caller, resource.technician_id)


def _update_appointment(caller: Profile, resource: Appointment, fields) -> Decision:
    if caller.is_admin:
        return ALLOW

    requested = set(fields or ())

    if caller.role == Role.TECHNICIAN:
        if requested - {"status"}:
            return _deny("technicians may only change the status field")
        return _is_assigned_technician(caller, resource.technician_id)

    if caller.role == Role.CUSTOMER:
        if resource.customer_id != caller.user_id:
            return _deny("appointment belongs to another customer")
        if resource.status != AppointmentStatus.PENDING:
            return _deny(
                f"appointment is {resource.status.value}; only pending appointments can be changed"
            )
        blocked = requested - CUSTOMER_EDITABLE_FIELDS
        if blocked:
            return _deny(f"customers cannot change {', '.join(sorted(blocked))}")
        return ALLOW

    return _deny("role may not update appointments")


def _view_tasks(caller: Profile, resource: Task | None, fields) -> Decision:
    if caller.is_admin:
        return ALLOW
    if caller.role != Role.TECHNICIAN:
        return _deny("only technicians and admins can view tasks")
    if resource is not None and resource.technician_id != caller.user_id:
        return _deny("task is assigned to another technician")
    return ALLOW


def _update_task_status(caller: Profile, resource: Task, fields) -> Decision:
    if caller.is_admin:
        return ALLOW
    return _is_assigned_technician(caller, resource.technician_id)


def _view_profile(caller: Profile, resource: Profile, fields) -> Decision:
    if caller.is_admin or resource.user_id == caller.user_id:
        return ALLOW
    return _deny("profiles are visible to their owner and admins only")


def _update_profile(caller: Profile, resource: Profile, fields) -> Decision:
    if caller.is_admin:
        return ALLOW
    if resource.user_id != caller.user_id:
        return _deny("you can only update your own profile")
    blocked = set(fields or ()) - SELF_EDITABLE_FIELDS
    if blocked:
        return _deny(f"only an admin can change {', '.join(sorted(blocked))}")
    return ALLOW


_RULES: dict[Action, Callable[[Profile, object, Iterable[str] | None], Decision]] = {
    Action.CREATE_APPOINTMENT: _create_appointment,
    Action.VIEW_APPOINTMENT: _view_appointment,
    Action.UPDATE_APPOINTMENT: _update_appointment,
    Action.UPDATE_APPOINTMENT_STATUS: _update_appointment_status,
    Action.ASSIGN_TECHNICIAN: _admin_only,
    Action.APPROVE_ANY: _admin_only,
    Action.APPROVE_TECHNICIAN: _admin_only,
    Action.VIEW_TASKS: _view_tasks,
    Action.UPDATE_TASK_STATUS: _update_task_status,
    Action.VIEW_PROFILE: _view_profile,
    Action.UPDATE_PROFILE: _update_profile,
}


def authorize(
    caller: Profile,
    action: Action,
    resource: Appointment | Task | Profile | None = None,
    fields: Iterable[str] | None = None,
) -> Decision:
    """
    Decide whether caller may perform action on resource.

    Args:
        caller: The acting profile (role and approval flag are read from it)
        action: Operation being attempted
        resource: Target record, where the rule depends on ownership
        fields: Field names being written, for field-scoped update rules

    Returns:
        Decision; falsy when denied, with a reason
    """
    return _RULES[action](caller, resource, fields)


def require(
    caller: Profile,
    action: Action,
    resource: Appointment | Task | Profile | None = None,
    fields: Iterable[str] | None = None,
) -> None:
    """
    Enforce authorize().

    Raises:
        AuthorizationDenied: With the action and the denial reason
    """
    decision = authorize(caller, action, resource, fields)
    if not decision:
        raise AuthorizationDenied(action.value, decision.reason)

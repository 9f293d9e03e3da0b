"""POST /api/actions, the unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from api.base import success_response
from api.deps import resolve_capabilities
from core.capabilities import Capabilities
from core.errors import AuthorizationDenied, ValidationError
from core.models import AppointmentUpdate, AssignmentRequest, ProfileUpdate
from core.services import Services
from utils.timezone import format_slot_time


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict = Field(default_factory=dict)


def create_actions_router(services: Services) -> APIRouter:
    router = APIRouter()

    handlers = {
        "appointment": AppointmentHandler(),
        "task": TaskHandler(),
        "profile": ProfileHandler(),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        capabilities = resolve_capabilities(request, services)
        method = getattr(handler, f"_handle_{body.action}")
        result = method(capabilities, dict(body.data))
        return success_response(result, request)

    return router


# =============================================================================
# HELPERS
# =============================================================================


def _operation(capabilities: Capabilities, name: str, label: str):
    """The capability method, or AuthorizationDenied if the role lacks it."""
    if name not in capabilities.operations():
        raise AuthorizationDenied(label, f"{capabilities.role.value} accounts cannot do this")
    return getattr(capabilities, name)


def _uuid(data: dict, key: str) -> UUID:
    value = data.pop(key, None)
    if value is None:
        raise ValidationError(f"'{key}' is required", field=key)
    return UUID(str(value))


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class AppointmentHandler:
    ALLOWED_ACTIONS = {"book", "update", "approve", "reject", "assign", "start", "complete"}

    _ASSIGNMENT_KEYS = ("technician_id", "task_description", "estimated_duration_hours", "admin_notes")

    def _handle_book(self, capabilities: Capabilities, data: dict):
        book = _operation(capabilities, "book", "create-appointment")
        result = book(data)
        return {
            "appointment": result.appointment.model_dump(mode="json"),
            "requested_time": format_slot_time(result.requested_time),
            "final_time": result.appointment.display_time,
            "was_rescheduled": result.was_rescheduled,
        }

    def _handle_update(self, capabilities: Capabilities, data: dict):
        update = _operation(capabilities, "update_appointment", "update-appointment")
        appointment_id = _uuid(data, "id")
        return update(appointment_id, AppointmentUpdate(**data)).model_dump(mode="json")

    def _handle_approve(self, capabilities: Capabilities, data: dict):
        approve = _operation(capabilities, "approve", "approve-any")
        appointment_id = _uuid(data, "id")
        assignment = None
        if any(key in data for key in self._ASSIGNMENT_KEYS):
            assignment = AssignmentRequest(appointment_id=appointment_id, **data)
        return approve(appointment_id, assignment).model_dump(mode="json")

    def _handle_reject(self, capabilities: Capabilities, data: dict):
        reject = _operation(capabilities, "reject", "approve-any")
        appointment_id = _uuid(data, "id")
        reason = data.get("rejection_reason") or data.get("reason") or ""
        return reject(appointment_id, reason).model_dump(mode="json")

    def _handle_assign(self, capabilities: Capabilities, data: dict):
        assign = _operation(capabilities, "assign", "assign-technician")
        if "id" in data and "appointment_id" not in data:
            data["appointment_id"] = data.pop("id")
        return assign(AssignmentRequest(**data)).model_dump(mode="json")

    def _handle_start(self, capabilities: Capabilities, data: dict):
        start = _operation(capabilities, "start", "update-appointment-status")
        return start(_uuid(data, "id")).model_dump(mode="json")

    def _handle_complete(self, capabilities: Capabilities, data: dict):
        complete = _operation(capabilities, "complete", "update-appointment-status")
        return complete(_uuid(data, "id")).model_dump(mode="json")


class TaskHandler:
    ALLOWED_ACTIONS = {"update_status"}

    def _handle_update_status(self, capabilities: Capabilities, data: dict):
        update_status = _operation(capabilities, "update_task_status", "update-task-status")
        task_id = _uuid(data, "id")
        if not data.get("status"):
            raise ValidationError("'status' is required", field="status")
        return update_status(task_id, data["status"]).model_dump(mode="json")


class ProfileHandler:
    ALLOWED_ACTIONS = {"update", "approve_technician", "revoke_technician"}

    def _handle_update(self, capabilities: Capabilities, data: dict):
        user_id = data.pop("user_id", None)
        if user_id is None or UUID(str(user_id)) == capabilities.caller.user_id:
            return capabilities.update_my_profile(ProfileUpdate(**data)).model_dump(mode="json")
        update = _operation(capabilities, "update_profile", "update-profile")
        return update(UUID(str(user_id)), ProfileUpdate(**data)).model_dump(mode="json")

    def _handle_approve_technician(self, capabilities: Capabilities, data: dict):
        approve = _operation(capabilities, "approve_technician", "approve-technician")
        return approve(_uuid(data, "user_id")).model_dump(mode="json")

    def _handle_revoke_technician(self, capabilities: Capabilities, data: dict):
        revoke = _operation(capabilities, "revoke_technician", "approve-technician")
        return revoke(_uuid(data, "user_id")).model_dump(mode="json")

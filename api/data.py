"""GET /api/data, the unified read endpoint."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from api.deps import resolve_capabilities
from core.capabilities import Capabilities
from core.errors import AuthorizationDenied, ValidationError
from core.models import AppointmentStatus, TaskStatus
from core.notifications import NotificationSink
from core.services import Services
from utils.timezone import format_slot_time, parse_slot_time


VALID_TYPES = {"appointments", "tasks", "technicians", "profile", "slots", "task_summary", "notifications"}


def create_data_router(services: Services, notifications: NotificationSink) -> APIRouter:
    router = APIRouter()

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        appointment_id: str | None = Query(None),
        status: str | None = Query(None),
        approved: bool | None = Query(None),
        date: str | None = Query(None),
        time: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        capabilities = resolve_capabilities(request, services)

        if type == "appointments":
            data = _handle_appointments(capabilities, id, status, limit)
        elif type == "tasks":
            data = _handle_tasks(capabilities, appointment_id, status)
        elif type == "technicians":
            data = _handle_technicians(capabilities, approved)
        elif type == "profile":
            data = _handle_profile(capabilities, id)
        elif type == "slots":
            data = _handle_slots(capabilities, date, time)
        elif type == "task_summary":
            data = _handle_task_summary(capabilities, id)
        else:
            data = [n.to_dict() for n in notifications.recent(capabilities.caller.user_id, limit)]

        return success_response(data, request)

    return router


def _require(capabilities: Capabilities, name: str, label: str):
    if name not in capabilities.operations():
        raise AuthorizationDenied(label, f"{capabilities.role.value} accounts cannot do this")
    return getattr(capabilities, name)


def _handle_appointments(capabilities, id, status, limit):
    if id:
        return capabilities.get_appointment(UUID(id)).model_dump(mode="json")

    status_filter = AppointmentStatus(status) if status else None
    appointments = capabilities.list_appointments(status_filter, limit)
    return [a.model_dump(mode="json") for a in appointments]


def _handle_tasks(capabilities, appointment_id, status):
    if appointment_id:
        list_for_appointment = _require(capabilities, "list_tasks_for_appointment", "view-tasks")
        tasks = list_for_appointment(UUID(appointment_id))
    else:
        list_tasks = _require(capabilities, "list_tasks", "view-tasks")
        tasks = list_tasks(TaskStatus(status) if status else None)
    return [t.model_dump(mode="json") for t in tasks]


def _handle_technicians(capabilities, approved):
    list_technicians = _require(capabilities, "list_technicians", "view-profile")
    if "approve_technician" in capabilities.operations():
        technicians = list_technicians(approved)
    else:
        technicians = list_technicians()
    # Non-admins only need a name to pick
    if capabilities.caller.is_admin:
        return [t.model_dump(mode="json") for t in technicians]
    return [{"user_id": str(t.user_id), "full_name": t.full_name} for t in technicians]


def _handle_profile(capabilities, id):
    if id and UUID(id) != capabilities.caller.user_id:
        get_profile = _require(capabilities, "get_profile", "view-profile")
        return get_profile(UUID(id)).model_dump(mode="json")
    return capabilities.my_profile().model_dump(mode="json")


def _handle_slots(capabilities, day, time):
    if not day:
        raise ValidationError("'date' is required for slots", field="date")
    try:
        slot_date = date.fromisoformat(day)
    except ValueError as e:
        raise ValidationError("Please enter a valid date", field="date") from e

    if time:
        check_slot = _require(capabilities, "check_slot", "view-appointment")
        return {
            "date": slot_date.isoformat(),
            "time": format_slot_time(parse_slot_time(time)),
            "available": check_slot(slot_date, time),
        }

    available_slots = _require(capabilities, "available_slots", "view-appointment")
    return {
        "date": slot_date.isoformat(),
        "available": [format_slot_time(slot) for slot in available_slots(slot_date)],
    }


def _handle_task_summary(capabilities, id):
    task_summary = _require(capabilities, "task_summary", "view-tasks")
    if capabilities.caller.is_admin:
        if not id:
            raise ValidationError("'id' (technician user id) is required", field="id")
        counts = task_summary(UUID(id))
    else:
        counts = task_summary()
    return {**counts.model_dump(), "total": counts.total}

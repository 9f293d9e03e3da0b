"""
Handlers that turn domain events into user notifications.

Each factory captures the sink at wiring time and returns the handler.
register_notification_handlers wires all of them onto a bus.
"""

import logging
from typing import Callable

from core.event_bus import EventBus
from core.events import (
    AppointmentApproved, AppointmentBooked, AppointmentCompleted, AppointmentRejected,
    AppointmentStarted, TaskAssigned, TaskStatusChanged, TechnicianApproved, TechnicianRevoked,
)
from core.models import AppointmentStatus, TaskStatus
from core.notifications import Notification, NotificationSink, NotificationVariant
from utils.timezone import format_slot_time

logger = logging.getLogger(__name__)


def _when(appointment) -> str:
    return f"{appointment.appointment_date.isoformat()} at {format_slot_time(appointment.appointment_time)}"


def handle_appointment_booked(sink: NotificationSink) -> Callable:
    """Confirm a booking to the customer."""

    def handler(event: AppointmentBooked):
        appointment = event.appointment
        if appointment.status == AppointmentStatus.PENDING:
            title = "Appointment Requested"
            description = f"Your appointment request for {_when(appointment)} is awaiting review."
        elif event.was_rescheduled:
            title = "Appointment Rescheduled & Confirmed!"
            description = (
                f"Your preferred time {format_slot_time(event.requested_time)} was unavailable. "
                f"Your appointment has been confirmed for {_when(appointment)}."
            )
        else:
            title = "Appointment Confirmed!"
            description = f"Your appointment has been automatically approved for {_when(appointment)}."

        sink.push(Notification(appointment.customer_id, title, description))

    return handler


def handle_appointment_approved(sink: NotificationSink) -> Callable:

    def handler(event: AppointmentApproved):
        appointment = event.appointment
        sink.push(Notification(
            appointment.customer_id,
            "Appointment Approved",
            f"Your appointment on {_when(appointment)} has been approved.",
        ))

    return handler


def handle_appointment_rejected(sink: NotificationSink) -> Callable:

    def handler(event: AppointmentRejected):
        appointment = event.appointment
        sink.push(Notification(
            appointment.customer_id,
            "Appointment Rejected",
            f"Your appointment on {_when(appointment)} has been rejected: {appointment.rejection_reason}",
            NotificationVariant.DESTRUCTIVE,
        ))

    return handler


def handle_appointment_started(sink: NotificationSink) -> Callable:

    def handler(event: AppointmentStarted):
        appointment = event.appointment
        sink.push(Notification(
            appointment.customer_id,
            "Service Started",
            f"Work has started on your {appointment.vehicle}.",
        ))

    return handler


def handle_appointment_completed(sink: NotificationSink) -> Callable:
    """Tell the customer, and every technician with a task on it."""

    def handler(event: AppointmentCompleted):
        appointment = event.appointment
        sink.push(Notification(
            appointment.customer_id,
            "Service Completed",
            f"Your {appointment.vehicle} service has been completed.",
        ))
        for technician_id in {task.technician_id for task in event.tasks}:
            sink.push(Notification(
                technician_id,
                "Job Completed",
                f"The {appointment.vehicle} service has been marked as complete.",
            ))

    return handler


def handle_task_assigned(sink: NotificationSink) -> Callable:
    """Notify the assigned technician and the customer."""

    def handler(event: TaskAssigned):
        task, appointment = event.task, event.appointment
        sink.push(Notification(
            task.technician_id,
            "Technician Assigned",
            f"You have been assigned to the {appointment.vehicle} on {_when(appointment)}: "
            f"{task.task_description}",
        ))
        name = event.technician_name or "A technician"
        sink.push(Notification(
            appointment.customer_id,
            "Technician Assigned",
            f"{name} has been assigned to your appointment.",
        ))

    return handler


def handle_task_status_changed(sink: NotificationSink) -> Callable:

    def handler(event: TaskStatusChanged):
        task = event.task
        if task.status == TaskStatus.IN_PROGRESS:
            title, verb = "Job Started", "started"
        elif task.status == TaskStatus.COMPLETED:
            title, verb = "Job Completed", "completed"
        else:
            return
        sink.push(Notification(task.technician_id, title, f"Task {verb}: {task.task_description}"))

    return handler


def handle_technician_approved(sink: NotificationSink) -> Callable:

    def handler(event: TechnicianApproved):
        sink.push(Notification(
            event.profile.user_id,
            "Technician Approved",
            "You can now access your dashboard.",
        ))

    return handler


def handle_technician_revoked(sink: NotificationSink) -> Callable:

    def handler(event: TechnicianRevoked):
        sink.push(Notification(
            event.profile.user_id,
            "Technician Rejected",
            "Your technician application has been rejected.",
            NotificationVariant.DESTRUCTIVE,
        ))

    return handler


def register_notification_handlers(bus: EventBus, sink: NotificationSink) -> None:
    """Subscribe every notification handler to its event."""
    bus.subscribe("AppointmentBooked", handle_appointment_booked(sink))
    bus.subscribe("AppointmentApproved", handle_appointment_approved(sink))
    bus.subscribe("AppointmentRejected", handle_appointment_rejected(sink))
    bus.subscribe("AppointmentStarted", handle_appointment_started(sink))
    bus.subscribe("AppointmentCompleted", handle_appointment_completed(sink))
    bus.subscribe("TaskAssigned", handle_task_assigned(sink))
    bus.subscribe("TaskStatusChanged", handle_task_status_changed(sink))
    bus.subscribe("TechnicianApproved", handle_technician_approved(sink))
    bus.subscribe("TechnicianRevoked", handle_technician_revoked(sink))
    logger.info("Notification handlers registered")

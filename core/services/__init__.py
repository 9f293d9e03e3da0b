"""Domain services and their wiring."""

from dataclasses import dataclass

from core.audit import AuditLogger
from core.config import SchedulingConfig
from core.event_bus import EventBus
from core.repositories.base import Store
from core.services.appointment_service import AppointmentService
from core.services.profile_service import ProfileService
from core.services.task_service import TaskService


@dataclass(frozen=True)
class Services:
    """One set of services sharing a store, audit log and bus."""

    profiles: ProfileService
    appointments: AppointmentService
    tasks: TaskService
    audit: AuditLogger
    bus: EventBus


def build_services(store: Store, bus: EventBus, config: SchedulingConfig) -> Services:
    """
    Wire the services over a store.

    Usage:
        bus = EventBus()
        register_notification_handlers(bus, InMemoryNotificationSink())
        services = build_services(InMemoryStore(), bus, SchedulingConfig())
    """
    audit = AuditLogger(store.audit)
    tasks = TaskService(store, audit, bus)
    return Services(
        profiles=ProfileService(store, audit, bus),
        appointments=AppointmentService(store, audit, bus, config, tasks),
        tasks=tasks,
        audit=audit,
        bus=bus,
    )

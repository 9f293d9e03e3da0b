"""
In-process store implementing the repository interfaces.

One re-entrant lock guards all tables, so aggregate operations are atomic the
same way a single database transaction is. Enforces the active-slot
uniqueness that the PostgreSQL schema expresses as a partial unique index.
Rows are kept as dicts and every read builds a new record.
"""

import threading
from datetime import date, time
from typing import Any
from uuid import UUID, uuid4

from core.errors import InvalidTransitionError, NotFoundError, SlotUnavailable
from core.models import (
    ACTIVE_STATUSES, Appointment, AppointmentCreate, AppointmentStatus,
    AppointmentWithParticipants, Profile, ProfileCreate, Role, Task, TaskCreate,
    TaskStatus, TaskSummary,
)
from utils.timezone import now_utc


class _Tables:
    def __init__(self):
        self.lock = threading.RLock()
        self.profiles: dict[UUID, dict[str, Any]] = {}
        self.appointments: dict[UUID, dict[str, Any]] = {}
        self.tasks: dict[UUID, dict[str, Any]] = {}
        self.audit: list[dict[str, Any]] = []


class InMemoryProfileRepository:

    def __init__(self, tables: _Tables):
        self._t = tables

    def create(self, data: ProfileCreate, is_approved: bool) -> Profile:
        with self._t.lock:
            if data.user_id in self._t.profiles:
                raise ValueError(f"Profile for user {data.user_id} already exists")
            now = now_utc()
            row = {
                "id": uuid4(),
                **data.model_dump(),
                "is_approved": is_approved,
                "created_at": now,
                "updated_at": now,
            }
            self._t.profiles[data.user_id] = row
            return Profile.model_validate(row)

    def get_by_user_id(self, user_id: UUID) -> Profile | None:
        with self._t.lock:
            row = self._t.profiles.get(user_id)
            return Profile.model_validate(row) if row else None

    def update(self, user_id: UUID, fields: dict[str, Any]) -> Profile:
        with self._t.lock:
            row = self._t.profiles.get(user_id)
            if row is None:
                raise NotFoundError(f"Profile for user {user_id} not found")
            row.update(fields)
            row["updated_at"] = now_utc()
            return Profile.model_validate(row)

    def list_technicians(self, approved: bool | None = None) -> list[Profile]:
        with self._t.lock:
            rows = [
                r for r in self._t.profiles.values()
                if r["role"] == Role.TECHNICIAN
                and (approved is None or r["is_approved"] == approved)
            ]
            rows.sort(key=lambda r: r["full_name"])
            return [Profile.model_validate(r) for r in rows]


class InMemoryAppointmentRepository:

    def __init__(self, tables: _Tables):
        self._t = tables

    def _slot_holder(self, appointment_date: date, appointment_time: time, exclude: UUID | None = None):
        for row in self._t.appointments.values():
            if (
                row["id"] != exclude
                and row["status"] in ACTIVE_STATUSES
                and row["appointment_date"] == appointment_date
                and row["appointment_time"] == appointment_time
            ):
                return row
        return None

    def _row(self, appointment_id: UUID) -> dict[str, Any]:
        row = self._t.appointments.get(appointment_id)
        if row is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return row

    @staticmethod
    def _check_expected(row: dict[str, Any], target: str, expected: frozenset[AppointmentStatus] | None):
        if expected is not None and row["status"] not in expected:
            raise InvalidTransitionError("appointment", AppointmentStatus(row["status"]).value, target)

    def create(self, data: AppointmentCreate) -> Appointment:
        with self._t.lock:
            if data.status in ACTIVE_STATUSES and self._slot_holder(data.appointment_date, data.appointment_time):
                raise SlotUnavailable(data.appointment_date, data.appointment_time)
            now = now_utc()
            row = {
                "id": uuid4(),
                **data.model_dump(),
                "technician_id": None,
                "rejection_reason": None,
                "estimated_duration_hours": None,
                "created_at": now,
                "updated_at": now,
            }
            self._t.appointments[row["id"]] = row
            return Appointment.model_validate(row)

    def get(self, appointment_id: UUID) -> Appointment | None:
        with self._t.lock:
            row = self._t.appointments.get(appointment_id)
            return Appointment.model_validate(row) if row else None

    def update(
        self,
        appointment_id: UUID,
        fields: dict[str, Any],
        expected: frozenset[AppointmentStatus] | None = None,
    ) -> Appointment:
        with self._t.lock:
            row = self._row(appointment_id)
            self._check_expected(row, AppointmentStatus(fields.get("status", row["status"])).value, expected)

            merged = {**row, **fields}
            if merged["status"] in ACTIVE_STATUSES and self._slot_holder(
                merged["appointment_date"], merged["appointment_time"], exclude=appointment_id
            ):
                raise SlotUnavailable(merged["appointment_date"], merged["appointment_time"])

            row.update(fields)
            row["updated_at"] = now_utc()
            return Appointment.model_validate(row)

    def slot_taken(self, appointment_date: date, appointment_time: time) -> bool:
        with self._t.lock:
            return self._slot_holder(appointment_date, appointment_time) is not None

    def list_for_customer(self, customer_id: UUID, limit: int = 50) -> list[Appointment]:
        with self._t.lock:
            rows = [r for r in reversed(self._t.appointments.values()) if r["customer_id"] == customer_id]
            return [Appointment.model_validate(r) for r in rows[:limit]]

    def list_for_technician(self, technician_id: UUID, limit: int = 50) -> list[Appointment]:
        with self._t.lock:
            rows = [r for r in self._t.appointments.values() if r["technician_id"] == technician_id]
            rows.sort(key=lambda r: (r["appointment_date"], r["appointment_time"]))
            return [Appointment.model_validate(r) for r in rows[:limit]]

    def list_with_participants(
        self,
        status: AppointmentStatus | None = None,
        customer_id: UUID | None = None,
        technician_id: UUID | None = None,
        limit: int = 100,
    ) -> list[AppointmentWithParticipants]:
        with self._t.lock:
            result = []
            for row in reversed(self._t.appointments.values()):
                if status is not None and row["status"] != status:
                    continue
                if customer_id is not None and row["customer_id"] != customer_id:
                    continue
                if technician_id is not None and row["technician_id"] != technician_id:
                    continue

                customer = self._t.profiles.get(row["customer_id"])
                technician = self._t.profiles.get(row["technician_id"]) if row["technician_id"] else None
                tasks = [
                    TaskSummary.model_validate(t) for t in self._t.tasks.values()
                    if t["appointment_id"] == row["id"]
                ]
                result.append(AppointmentWithParticipants(
                    **row,
                    customer_name=customer["full_name"] if customer else None,
                    technician_name=technician["full_name"] if technician else None,
                    tasks=tasks,
                ))
                if len(result) >= limit:
                    break
            return result

    def assign_technician(
        self,
        appointment_id: UUID,
        fields: dict[str, Any],
        task: TaskCreate,
        expected: frozenset[AppointmentStatus],
    ) -> tuple[Appointment, Task]:
        with self._t.lock:
            row = self._row(appointment_id)
            self._check_expected(row, AppointmentStatus(fields.get("status", row["status"])).value, expected)

            now = now_utc()
            row.update(fields)
            row["updated_at"] = now

            task_row = {
                "id": uuid4(),
                **task.model_dump(),
                "status": TaskStatus.ASSIGNED,
                "created_at": now,
                "updated_at": now,
            }
            self._t.tasks[task_row["id"]] = task_row
            return Appointment.model_validate(row), Task.model_validate(task_row)

    def complete(
        self,
        appointment_id: UUID,
        expected: frozenset[AppointmentStatus],
    ) -> tuple[Appointment, list[Task]]:
        with self._t.lock:
            row = self._row(appointment_id)
            self._check_expected(row, AppointmentStatus.COMPLETED.value, expected)

            now = now_utc()
            row["status"] = AppointmentStatus.COMPLETED
            row["updated_at"] = now

            tasks = []
            for task_row in self._t.tasks.values():
                if task_row["appointment_id"] != appointment_id:
                    continue
                if task_row["status"] != TaskStatus.COMPLETED:
                    task_row["status"] = TaskStatus.COMPLETED
                    task_row["updated_at"] = now
                tasks.append(Task.model_validate(task_row))

            return Appointment.model_validate(row), tasks


class InMemoryTaskRepository:

    def __init__(self, tables: _Tables):
        self._t = tables

    def get(self, task_id: UUID) -> Task | None:
        with self._t.lock:
            row = self._t.tasks.get(task_id)
            return Task.model_validate(row) if row else None

    def list_for_appointment(self, appointment_id: UUID) -> list[Task]:
        with self._t.lock:
            return [
                Task.model_validate(r) for r in self._t.tasks.values()
                if r["appointment_id"] == appointment_id
            ]

    def list_for_technician(self, technician_id: UUID, status: TaskStatus | None = None) -> list[Task]:
        with self._t.lock:
            return [
                Task.model_validate(r) for r in reversed(self._t.tasks.values())
                if r["technician_id"] == technician_id
                and (status is None or r["status"] == status)
            ]

    def list_all(self, status: TaskStatus | None = None, limit: int = 200) -> list[Task]:
        with self._t.lock:
            rows = [r for r in reversed(self._t.tasks.values()) if status is None or r["status"] == status]
            return [Task.model_validate(r) for r in rows[:limit]]

    def update_status(self, task_id: UUID, status: TaskStatus, expected: TaskStatus | None = None) -> Task:
        with self._t.lock:
            row = self._t.tasks.get(task_id)
            if row is None:
                raise NotFoundError(f"Task {task_id} not found")
            if expected is not None and row["status"] != expected:
                raise InvalidTransitionError("task", TaskStatus(row["status"]).value, status.value)
            row["status"] = status
            row["updated_at"] = now_utc()
            return Task.model_validate(row)


class InMemoryAuditStore:

    def __init__(self, tables: _Tables):
        self._t = tables

    def append(self, entry: dict[str, Any]) -> None:
        with self._t.lock:
            self._t.audit.append(dict(entry))

    def history(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        with self._t.lock:
            return [
                dict(e) for e in reversed(self._t.audit)
                if e["entity_type"] == entity_type and e["entity_id"] == entity_id
            ]

    def by_user(self, user_id: UUID, limit: int = 100) -> list[dict[str, Any]]:
        with self._t.lock:
            return [dict(e) for e in reversed(self._t.audit) if e["user_id"] == user_id][:limit]


class InMemoryStore:
    """
    All four repositories over one set of tables.

    Usage:
        store = InMemoryStore()
        store.appointments.create(...)
        store.tasks.list_for_appointment(appointment_id)
    """

    def __init__(self):
        tables = _Tables()
        self.profiles = InMemoryProfileRepository(tables)
        self.appointments = InMemoryAppointmentRepository(tables)
        self.tasks = InMemoryTaskRepository(tables)
        self.audit = InMemoryAuditStore(tables)

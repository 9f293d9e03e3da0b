"""
PostgreSQL implementations of the repository interfaces.

Row-level policies in db/schema.sql scope every query to the caller set in
utils.user_context. The active-slot partial unique index is the last line of
defence against two customers booking the same slot at once: its violation
surfaces as SlotUnavailable so the booking flow can re-resolve.
"""

import logging
from contextlib import contextmanager
from datetime import date, time
from typing import Any
from uuid import UUID, uuid4

import psycopg2
import psycopg2.errors
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.errors import InvalidTransitionError, NotFoundError, PersistenceFailure, SlotUnavailable
from core.models import (
    Appointment, AppointmentCreate, AppointmentStatus, AppointmentWithParticipants,
    Profile, ProfileCreate, Role, Task, TaskCreate, TaskStatus, TaskSummary,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_SLOT_INDEX = "appointments_active_slot_key"

_APPOINTMENT_COLUMNS = {
    "vehicle_make", "vehicle_model", "vehicle_year", "fault_description",
    "reason_description", "appointment_date", "appointment_time", "status",
    "technician_id", "admin_notes", "rejection_reason", "estimated_duration_hours",
}
_PROFILE_COLUMNS = {"full_name", "phone", "role", "is_approved"}


def _db_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if hasattr(value, "value"):
        return value.value
    return value


def _set_clause(fields: dict[str, Any], allowed: set[str]) -> tuple[str, list[Any]]:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown columns: {', '.join(sorted(unknown))}")
    parts = [f"{name} = %s" for name in fields]
    params = [_db_value(v) for v in fields.values()]
    parts.append("updated_at = %s")
    params.append(now_utc())
    return ", ".join(parts), params


@contextmanager
def _store_errors(slot: tuple[date, time] | None = None):
    """Translate driver errors into domain errors."""
    try:
        yield
    except psycopg2.errors.UniqueViolation as e:
        constraint = getattr(getattr(e, "diag", None), "constraint_name", None)
        if slot is not None and constraint in (None, _SLOT_INDEX):
            logger.warning("Slot conflict on %s %s", slot[0], slot[1])
            raise SlotUnavailable(*slot) from e
        raise PersistenceFailure(str(e)) from e
    except psycopg2.Error as e:
        logger.error("Store error: %s", e)
        raise PersistenceFailure("The appointment store is unavailable. Please try again.") from e


class PostgresProfileRepository:

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create(self, data: ProfileCreate, is_approved: bool) -> Profile:
        now = now_utc()
        with _store_errors():
            try:
                row = self.postgres.execute_returning(
                    """
                    INSERT INTO profiles (
                        id, user_id, full_name, phone, role, is_approved,
                        created_at, updated_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        uuid4(), data.user_id, data.full_name, data.phone,
                        data.role.value, is_approved, now, now
                    )
                )[0]
            except psycopg2.errors.UniqueViolation as e:
                raise ValueError(f"Profile for user {data.user_id} already exists") from e
        return Profile.model_validate(row)

    def get_by_user_id(self, user_id: UUID) -> Profile | None:
        with _store_errors():
            row = self.postgres.execute_single(
                "SELECT * FROM profiles WHERE user_id = %s",
                (user_id,)
            )
        return Profile.model_validate(row) if row else None

    def update(self, user_id: UUID, fields: dict[str, Any]) -> Profile:
        set_sql, params = _set_clause(fields, _PROFILE_COLUMNS)
        with _store_errors():
            rows = self.postgres.execute_returning(
                f"UPDATE profiles SET {set_sql} WHERE user_id = %s RETURNING *",
                tuple(params + [user_id])
            )
        if not rows:
            raise NotFoundError(f"Profile for user {user_id} not found")
        return Profile.model_validate(rows[0])

    def list_technicians(self, approved: bool | None = None) -> list[Profile]:
        query = "SELECT * FROM profiles WHERE role = %s"
        params: list[Any] = [Role.TECHNICIAN.value]
        if approved is not None:
            query += " AND is_approved = %s"
            params.append(approved)
        query += " ORDER BY full_name ASC"

        with _store_errors():
            rows = self.postgres.execute(query, tuple(params))
        return [Profile.model_validate(row) for row in rows]


class PostgresAppointmentRepository:

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    @staticmethod
    def _lock_row(cur, appointment_id: UUID, target: str, expected: frozenset[AppointmentStatus] | None) -> dict:
        cur.execute(
            "SELECT * FROM appointments WHERE id = %s FOR UPDATE",
            (str(appointment_id),)
        )
        current = cur.fetchone()
        if current is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        if expected is not None and AppointmentStatus(current["status"]) not in expected:
            raise InvalidTransitionError("appointment", current["status"], target)
        return current

    def create(self, data: AppointmentCreate) -> Appointment:
        now = now_utc()
        with _store_errors(slot=(data.appointment_date, data.appointment_time)):
            row = self.postgres.execute_returning(
                """
                INSERT INTO appointments (
                    id, customer_id, vehicle_make, vehicle_model, vehicle_year,
                    fault_description, reason_description,
                    appointment_date, appointment_time, status, admin_notes,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s,
                    %s, %s, %s, %s,
                    %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), data.customer_id, data.vehicle_make, data.vehicle_model, data.vehicle_year,
                    data.fault_description, data.reason_description,
                    data.appointment_date, data.appointment_time, data.status.value, data.admin_notes,
                    now, now
                )
            )[0]
        return Appointment.model_validate(row)

    def get(self, appointment_id: UUID) -> Appointment | None:
        with _store_errors():
            row = self.postgres.execute_single(
                "SELECT * FROM appointments WHERE id = %s",
                (appointment_id,)
            )
        return Appointment.model_validate(row) if row else None

    def update(
        self,
        appointment_id: UUID,
        fields: dict[str, Any],
        expected: frozenset[AppointmentStatus] | None = None,
    ) -> Appointment:
        set_sql, params = _set_clause(fields, _APPOINTMENT_COLUMNS)
        target = _db_value(fields.get("status", "update"))

        with _store_errors():
            with self.postgres.transaction() as cur:
                current = self._lock_row(cur, appointment_id, target, expected)
                slot = (
                    fields.get("appointment_date", current["appointment_date"]),
                    fields.get("appointment_time", current["appointment_time"]),
                )
                try:
                    cur.execute(
                        f"UPDATE appointments SET {set_sql} WHERE id = %s RETURNING *",
                        tuple(params + [str(appointment_id)])
                    )
                except psycopg2.errors.UniqueViolation as e:
                    logger.warning("Slot conflict on %s %s", slot[0], slot[1])
                    raise SlotUnavailable(*slot) from e
                row = cur.fetchone()
        return Appointment.model_validate(row)

    def slot_taken(self, appointment_date: date, appointment_time: time) -> bool:
        # Row policies hide other customers' bookings; slot_taken() bypasses them
        with _store_errors():
            row = self.postgres.execute_single(
                "SELECT slot_taken(%s, %s) AS taken",
                (appointment_date, appointment_time)
            )
        return bool(row and row["taken"])

    def list_for_customer(self, customer_id: UUID, limit: int = 50) -> list[Appointment]:
        with _store_errors():
            rows = self.postgres.execute(
                """
                SELECT * FROM appointments
                WHERE customer_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (customer_id, limit)
            )
        return [Appointment.model_validate(row) for row in rows]

    def list_for_technician(self, technician_id: UUID, limit: int = 50) -> list[Appointment]:
        with _store_errors():
            rows = self.postgres.execute(
                """
                SELECT * FROM appointments
                WHERE technician_id = %s
                ORDER BY appointment_date ASC, appointment_time ASC
                LIMIT %s
                """,
                (technician_id, limit)
            )
        return [Appointment.model_validate(row) for row in rows]

    def list_with_participants(
        self,
        status: AppointmentStatus | None = None,
        customer_id: UUID | None = None,
        technician_id: UUID | None = None,
        limit: int = 100,
    ) -> list[AppointmentWithParticipants]:
        conditions = []
        params: list[Any] = []
        if status is not None:
            conditions.append("a.status = %s")
            params.append(status.value)
        if customer_id is not None:
            conditions.append("a.customer_id = %s")
            params.append(customer_id)
        if technician_id is not None:
            conditions.append("a.technician_id = %s")
            params.append(technician_id)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)

        with _store_errors():
            rows = self.postgres.execute(
                f"""
                SELECT a.*,
                       c.full_name AS customer_name,
                       t.full_name AS technician_name
                FROM appointments a
                LEFT JOIN profiles c ON c.user_id = a.customer_id
                LEFT JOIN profiles t ON t.user_id = a.technician_id
                {where}
                ORDER BY a.created_at DESC
                LIMIT %s
                """,
                tuple(params)
            )
            if not rows:
                return []

            task_rows = self.postgres.execute(
                """
                SELECT id, appointment_id, task_description, estimated_duration_hours, status
                FROM tasks
                WHERE appointment_id = ANY(%s::uuid[])
                ORDER BY created_at ASC
                """,
                ([str(row["id"]) for row in rows],)
            )

        tasks_by_appointment: dict[str, list[TaskSummary]] = {}
        for task_row in task_rows:
            tasks_by_appointment.setdefault(str(task_row["appointment_id"]), []).append(
                TaskSummary.model_validate(task_row)
            )

        return [
            AppointmentWithParticipants.model_validate({
                **row,
                "tasks": tasks_by_appointment.get(str(row["id"]), []),
            })
            for row in rows
        ]

    def assign_technician(
        self,
        appointment_id: UUID,
        fields: dict[str, Any],
        task: TaskCreate,
        expected: frozenset[AppointmentStatus],
    ) -> tuple[Appointment, Task]:
        set_sql, params = _set_clause(fields, _APPOINTMENT_COLUMNS)
        target = _db_value(fields.get("status", AppointmentStatus.APPROVED))
        now = now_utc()

        with _store_errors():
            with self.postgres.transaction() as cur:
                self._lock_row(cur, appointment_id, target, expected)
                cur.execute(
                    f"UPDATE appointments SET {set_sql} WHERE id = %s RETURNING *",
                    tuple(params + [str(appointment_id)])
                )
                appointment_row = cur.fetchone()
                cur.execute(
                    """
                    INSERT INTO tasks (
                        id, appointment_id, technician_id, task_description,
                        estimated_duration_hours, status, created_at, updated_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        str(uuid4()), str(task.appointment_id), str(task.technician_id),
                        task.task_description, task.estimated_duration_hours,
                        TaskStatus.ASSIGNED.value, now, now
                    )
                )
                task_row = cur.fetchone()

        return Appointment.model_validate(appointment_row), Task.model_validate(task_row)

    def complete(
        self,
        appointment_id: UUID,
        expected: frozenset[AppointmentStatus],
    ) -> tuple[Appointment, list[Task]]:
        now = now_utc()

        with _store_errors():
            with self.postgres.transaction() as cur:
                self._lock_row(cur, appointment_id, AppointmentStatus.COMPLETED.value, expected)
                cur.execute(
                    """
                    UPDATE appointments
                    SET status = %s, updated_at = %s
                    WHERE id = %s
                    RETURNING *
                    """,
                    (AppointmentStatus.COMPLETED.value, now, str(appointment_id))
                )
                appointment_row = cur.fetchone()
                cur.execute(
                    """
                    UPDATE tasks
                    SET status = %s, updated_at = %s
                    WHERE appointment_id = %s AND status <> %s
                    """,
                    (TaskStatus.COMPLETED.value, now, str(appointment_id), TaskStatus.COMPLETED.value)
                )
                cur.execute(
                    "SELECT * FROM tasks WHERE appointment_id = %s ORDER BY created_at ASC",
                    (str(appointment_id),)
                )
                task_rows = cur.fetchall()

        return (
            Appointment.model_validate(appointment_row),
            [Task.model_validate(row) for row in task_rows],
        )


class PostgresTaskRepository:

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def get(self, task_id: UUID) -> Task | None:
        with _store_errors():
            row = self.postgres.execute_single("SELECT * FROM tasks WHERE id = %s", (task_id,))
        return Task.model_validate(row) if row else None

    def list_for_appointment(self, appointment_id: UUID) -> list[Task]:
        with _store_errors():
            rows = self.postgres.execute(
                "SELECT * FROM tasks WHERE appointment_id = %s ORDER BY created_at ASC",
                (appointment_id,)
            )
        return [Task.model_validate(row) for row in rows]

    def list_for_technician(self, technician_id: UUID, status: TaskStatus | None = None) -> list[Task]:
        query = "SELECT * FROM tasks WHERE technician_id = %s"
        params: list[Any] = [technician_id]
        if status is not None:
            query += " AND status = %s"
            params.append(status.value)
        query += " ORDER BY created_at DESC"

        with _store_errors():
            rows = self.postgres.execute(query, tuple(params))
        return [Task.model_validate(row) for row in rows]

    def list_all(self, status: TaskStatus | None = None, limit: int = 200) -> list[Task]:
        query = "SELECT * FROM tasks"
        params: list[Any] = []
        if status is not None:
            query += " WHERE status = %s"
            params.append(status.value)
        query += " ORDER BY created_at DESC LIMIT %s"
        params.append(limit)

        with _store_errors():
            rows = self.postgres.execute(query, tuple(params))
        return [Task.model_validate(row) for row in rows]

    def update_status(self, task_id: UUID, status: TaskStatus, expected: TaskStatus | None = None) -> Task:
        query = "UPDATE tasks SET status = %s, updated_at = %s WHERE id = %s"
        params: list[Any] = [status.value, now_utc(), task_id]
        if expected is not None:
            query += " AND status = %s"
            params.append(expected.value)
        query += " RETURNING *"

        with _store_errors():
            rows = self.postgres.execute_returning(query, tuple(params))
        if rows:
            return Task.model_validate(rows[0])

        current = self.get(task_id)
        if current is None:
            raise NotFoundError(f"Task {task_id} not found")
        raise InvalidTransitionError("task", current.status.value, status.value)


class PostgresAuditStore:

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def append(self, entry: dict[str, Any]) -> None:
        # audit_log has no RLS so any caller may append
        with _store_errors():
            self.postgres.execute(
                """
                INSERT INTO audit_log (id, user_id, entity_type, entity_id, action, changes, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    entry["id"], entry["user_id"], entry["entity_type"], entry["entity_id"],
                    entry["action"], Json(entry["changes"]), entry["created_at"]
                )
            )

    def history(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        with _store_errors():
            return self.postgres.execute(
                """
                SELECT id, user_id, entity_type, entity_id, action, changes, created_at
                FROM audit_log
                WHERE entity_type = %s AND entity_id = %s
                ORDER BY created_at DESC
                """,
                (entity_type, entity_id)
            )

    def by_user(self, user_id: UUID, limit: int = 100) -> list[dict[str, Any]]:
        with _store_errors():
            return self.postgres.execute(
                """
                SELECT id, user_id, entity_type, entity_id, action, changes, created_at
                FROM audit_log
                WHERE user_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (user_id, limit)
            )


class PostgresStore:
    """All four repositories over one PostgresClient."""

    def __init__(self, postgres: PostgresClient):
        self.profiles = PostgresProfileRepository(postgres)
        self.appointments = PostgresAppointmentRepository(postgres)
        self.tasks = PostgresTaskRepository(postgres)
        self.audit = PostgresAuditStore(postgres)

"""
Audit trail for profile, appointment and task changes.

Entries are append-only and carry the caller who made the change, so an
admin can see who moved a booking or flipped a technician's approval. They
go through an AuditStore: the PostgreSQL audit_log table in production, a
list in the in-memory store.
"""

from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4

from utils.timezone import now_utc
from utils.user_context import current_user_id


class AuditAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditStore(Protocol):

    def append(self, entry: dict[str, Any]) -> None: ...

    def history(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]: ...

    def by_user(self, user_id: UUID, limit: int) -> list[dict[str, Any]]: ...


def compute_changes(
    before: dict[str, Any],
    after: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Field-level diff of two JSON-dumped records.

    Returns {field: {"old": ..., "new": ...}} for every field whose value
    differs. updated_at is skipped unless exclude_fields says otherwise.
    """
    skipped = exclude_fields or {"updated_at"}
    return {
        name: {"old": before.get(name), "new": after.get(name)}
        for name in before.keys() | after.keys()
        if name not in skipped and before.get(name) != after.get(name)
    }


class AuditLogger:
    """
    Writes change entries for the services.

    Records should be passed through model_dump(mode="json") first so ids,
    dates and slot times are stored as strings.

        audit = AuditLogger(store.audit)
        audit.log_change("appointment", appointment.id, AuditAction.UPDATE,
                         compute_changes(old_json, new_json))
    """

    def __init__(self, store: AuditStore):
        self.store = store

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        user_id: UUID | None = None
    ) -> None:
        """
        Append one entry.

        Creates log {"created": record}, updates the compute_changes diff.
        user_id falls back to the current caller; it stays None for system
        writes such as registration provisioning.
        """
        self.store.append({
            "id": uuid4(),
            "user_id": user_id if user_id is not None else current_user_id(),
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action.value,
            "changes": changes,
            "created_at": now_utc(),
        })

    def get_entity_history(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        """Every entry for one record, newest first."""
        return self.store.history(entity_type, entity_id)

    def get_user_activity(self, user_id: UUID, limit: int = 100) -> list[dict[str, Any]]:
        return self.store.by_user(user_id, limit)

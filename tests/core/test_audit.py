"""Tests for the audit trail."""

import pytest
from uuid import uuid4

from utils.user_context import acting_as


@pytest.fixture
def audit():
    from core.audit import AuditLogger
    from core.repositories import InMemoryStore

    return AuditLogger(InMemoryStore().audit)


class TestAuditAction:
    """Tests for AuditAction enum."""

    def test_has_create_update_delete(self):
        """AuditAction has required values."""
        from core.audit import AuditAction

        assert AuditAction.CREATE.value == "create"
        assert AuditAction.UPDATE.value == "update"
        assert AuditAction.DELETE.value == "delete"


class TestComputeChanges:
    """Tests for compute_changes utility function."""

    def test_detects_changed_fields(self):
        """Different values for same key detected."""
        from core.audit import compute_changes

        changes = compute_changes({"status": "pending"}, {"status": "approved"})

        assert changes == {"status": {"old": "pending", "new": "approved"}}

    def test_detects_added_and_removed_fields(self):
        """Keys present on one side only are changes."""
        from core.audit import compute_changes

        changes = compute_changes({"a": 1}, {"b": 2})

        assert changes["a"] == {"old": 1, "new": None}
        assert changes["b"] == {"old": None, "new": 2}

    def test_excludes_updated_at_by_default(self):
        """updated_at is ignored."""
        from core.audit import compute_changes

        assert compute_changes({"updated_at": "x"}, {"updated_at": "y"}) == {}

    def test_custom_exclude_fields(self):
        """Custom exclusions replace the default."""
        from core.audit import compute_changes

        changes = compute_changes(
            {"admin_notes": "a", "updated_at": "x"},
            {"admin_notes": "b", "updated_at": "y"},
            exclude_fields={"admin_notes"},
        )

        assert changes == {"updated_at": {"old": "x", "new": "y"}}


class TestAuditLogger:
    """Tests for AuditLogger over the in-memory store."""

    def test_log_change_uses_context_user(self, audit):
        """Entries are attributed to the current caller."""
        from core.audit import AuditAction

        user_id, entity_id = uuid4(), uuid4()
        with acting_as(user_id):
            audit.log_change("appointment", entity_id, AuditAction.CREATE, {"created": {"id": "x"}})

        entry = audit.get_entity_history("appointment", entity_id)[0]
        assert entry["user_id"] == user_id
        assert entry["action"] == "create"
        assert entry["changes"] == {"created": {"id": "x"}}

    def test_system_action_has_no_user(self, audit):
        """Outside a request the user is None."""
        from core.audit import AuditAction

        entity_id = uuid4()
        audit.log_change("profile", entity_id, AuditAction.CREATE, {})

        assert audit.get_entity_history("profile", entity_id)[0]["user_id"] is None

    def test_explicit_user_overrides(self, audit):
        """An explicit user_id wins over context."""
        from core.audit import AuditAction

        explicit, entity_id = uuid4(), uuid4()
        with acting_as(uuid4()):
            audit.log_change("task", entity_id, AuditAction.UPDATE, {}, user_id=explicit)

        assert audit.get_entity_history("task", entity_id)[0]["user_id"] == explicit

    def test_history_newest_first_and_filtered(self, audit):
        """History is per entity, newest first."""
        from core.audit import AuditAction

        entity_id = uuid4()
        audit.log_change("appointment", entity_id, AuditAction.CREATE, {"n": 1})
        audit.log_change("appointment", uuid4(), AuditAction.CREATE, {"n": 2})
        audit.log_change("appointment", entity_id, AuditAction.UPDATE, {"n": 3})

        history = audit.get_entity_history("appointment", entity_id)
        assert [e["changes"]["n"] for e in history] == [3, 1]

    def test_user_activity_respects_limit(self, audit):
        """Activity is per user and capped."""
        from core.audit import AuditAction

        user_id = uuid4()
        with acting_as(user_id):
            for n in range(5):
                audit.log_change("task", uuid4(), AuditAction.UPDATE, {"n": n})

        activity = audit.get_user_activity(user_id, limit=2)
        assert [e["changes"]["n"] for e in activity] == [4, 3]

"""Tests for notification records and sinks."""

import json
from unittest.mock import Mock
from uuid import uuid4

import pytest

from clients.valkey_client import ValkeyClient
from core.notifications import (
    InMemoryNotificationSink, Notification, NotificationVariant, ValkeyNotificationSink,
)


class TestNotification:
    """Serialization."""

    def test_dict_round_trip(self):
        """to_dict output rebuilds the same notification."""
        notification = Notification(uuid4(), "Appointment Approved", "See you then.",
                                    NotificationVariant.DESTRUCTIVE)
        data = notification.to_dict()

        assert data["variant"] == "destructive"
        assert isinstance(data["user_id"], str)
        assert Notification.from_dict(data) == notification

    def test_default_variant(self):
        """Plain toasts use the default variant."""
        assert Notification(uuid4(), "t", "d").variant == NotificationVariant.DEFAULT


class TestInMemoryNotificationSink:
    """Process-local queue."""

    def test_newest_first(self):
        """Recent returns latest first."""
        sink, user_id = InMemoryNotificationSink(), uuid4()
        sink.push(Notification(user_id, "first", ""))
        sink.push(Notification(user_id, "second", ""))

        assert [n.title for n in sink.recent(user_id)] == ["second", "first"]

    def test_capped_per_user(self):
        """Older entries fall off past the cap."""
        sink, user_id = InMemoryNotificationSink(max_per_user=2), uuid4()
        for n in range(3):
            sink.push(Notification(user_id, str(n), ""))

        assert [n.title for n in sink.recent(user_id)] == ["2", "1"]

    def test_users_isolated(self):
        """One user never sees another's notifications."""
        sink = InMemoryNotificationSink()
        sink.push(Notification(uuid4(), "theirs", ""))

        assert sink.recent(uuid4()) == []


class TestValkeyNotificationSink:
    """Valkey-backed queue."""

    @pytest.fixture
    def valkey(self):
        return Mock(spec=ValkeyClient)

    def test_push_uses_capped_list_with_ttl(self, valkey):
        """Push prepends to notifications:{user} with cap and expiry."""
        sink = ValkeyNotificationSink(valkey, max_per_user=10, ttl_days=1)
        notification = Notification(uuid4(), "Service Started", "On it.")

        sink.push(notification)

        valkey.push_json.assert_called_once_with(
            f"notifications:{notification.user_id}",
            notification.to_dict(),
            max_length=10,
            expire_seconds=86400,
        )

    def test_recent_reads_range(self, valkey):
        """Recent maps stored dicts back to notifications."""
        user_id = uuid4()
        stored = Notification(user_id, "Job Started", "Task started: brakes")
        valkey.range_json.return_value = [json.loads(json.dumps(stored.to_dict()))]

        result = ValkeyNotificationSink(valkey).recent(user_id, limit=5)

        valkey.range_json.assert_called_once_with(f"notifications:{user_id}", 0, 4)
        assert result == [stored]

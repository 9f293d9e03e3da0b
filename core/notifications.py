"""
User-facing notifications.

A notification is the toast a user sees after something happened to their
appointment or account. Handlers build them from domain events and push
them to a sink; delivery beyond the queue belongs to the front end.
"""

import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol
from uuid import UUID

from clients.valkey_client import ValkeyClient
from utils.timezone import now_utc, parse_iso

logger = logging.getLogger(__name__)


class NotificationVariant(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    user_id: UUID
    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT
    created_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["user_id"] = str(self.user_id)
        data["variant"] = self.variant.value
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        return cls(
            user_id=UUID(data["user_id"]),
            title=data["title"],
            description=data["description"],
            variant=NotificationVariant(data["variant"]),
            created_at=parse_iso(data["created_at"]),
        )


class NotificationSink(Protocol):

    def push(self, notification: Notification) -> None: ...

    def recent(self, user_id: UUID, limit: int = 20) -> list[Notification]: ...


class InMemoryNotificationSink:
    """Per-user lists kept in process, newest first."""

    def __init__(self, max_per_user: int = 50):
        self.max_per_user = max_per_user
        self._lock = threading.Lock()
        self._queues: dict[UUID, list[Notification]] = {}

    def push(self, notification: Notification) -> None:
        with self._lock:
            queue = self._queues.setdefault(notification.user_id, [])
            queue.insert(0, notification)
            del queue[self.max_per_user:]

    def recent(self, user_id: UUID, limit: int = 20) -> list[Notification]:
        with self._lock:
            return list(self._queues.get(user_id, [])[:limit])


class ValkeyNotificationSink:
    """
    Per-user capped lists in Valkey under notifications:{user_id}.

    Usage:
        sink = ValkeyNotificationSink(ValkeyClient(get_valkey_url()))
        sink.push(Notification(user_id, "Appointment Approved", "..."))
    """

    KEY_PREFIX = "notifications:"

    def __init__(self, valkey: ValkeyClient, max_per_user: int = 50, ttl_days: int = 30):
        self.valkey = valkey
        self.max_per_user = max_per_user
        self.ttl_seconds = ttl_days * 86400

    def _key(self, user_id: UUID) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    def push(self, notification: Notification) -> None:
        self.valkey.push_json(
            self._key(notification.user_id),
            notification.to_dict(),
            max_length=self.max_per_user,
            expire_seconds=self.ttl_seconds,
        )
        logger.debug("Queued '%s' for %s", notification.title, notification.user_id)

    def recent(self, user_id: UUID, limit: int = 20) -> list[Notification]:
        entries = self.valkey.range_json(self._key(user_id), 0, limit - 1)
        return [Notification.from_dict(entry) for entry in entries]

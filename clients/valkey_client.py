"""
Valkey (Redis-compatible) storage for sessions and notification queues.

Sessions are JSON values under `session:<token>` with a TTL; notifications
are capped JSON lists under `notifications:<user_id>`, newest first. The
connection is checked on construction and errors are never swallowed.
"""

import json
import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Thin redis-py wrapper speaking JSON.

        valkey = ValkeyClient(get_valkey_url())
        valkey.set_json("session:abc", session.to_store(), expire_seconds=3600)
        valkey.push_json("notifications:<user>", notification.to_dict(), max_length=50)
    """

    def __init__(self, url: str):
        """Connect and ping. Raises redis.ConnectionError if Valkey is unreachable."""
        self._client = redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("Connected to Valkey")

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        if expire_seconds is None:
            self._client.set(key, value)
        else:
            self._client.setex(key, expire_seconds, value)

    def delete(self, key: str) -> bool:
        """True if something was removed."""
        return self._client.delete(key) > 0

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        self.set(key, json.dumps(value), expire_seconds)

    def get_json(self, key: str) -> dict | list | None:
        """Decoded value, None for a missing key. Raises ValueError on corrupt JSON."""
        raw = self.get(key)
        return None if raw is None else _decode(key, raw)

    def push_json(
        self,
        key: str,
        value: dict,
        max_length: int,
        expire_seconds: int | None = None
    ) -> None:
        """Prepend to a list and trim it to max_length in one round trip."""
        pipe = self._client.pipeline()
        pipe.lpush(key, json.dumps(value))
        pipe.ltrim(key, 0, max_length - 1)
        if expire_seconds is not None:
            pipe.expire(key, expire_seconds)
        pipe.execute()

    def range_json(self, key: str, start: int = 0, stop: int = -1) -> list[dict]:
        return [_decode(key, raw) for raw in self._client.lrange(key, start, stop)]


def _decode(key: str, raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in key '{key}': {e}") from e

"""Shop sessions behind the session_token cookie.

The identity provider authenticates the person; this module issues and
checks the shop's own session for them. Sessions live in Valkey with a TTL
matching their expiry. Tokens are cryptographically random
(secrets.token_urlsafe).
"""

import logging
import secrets
from datetime import timedelta
from uuid import UUID

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.types import Session
from auth.exceptions import SessionExpiredError
from utils.timezone import now_utc, parse_iso

logger = logging.getLogger(__name__)


class SessionManager:
    """Issues, checks, slides and revokes session tokens.

    Sessions slide forward on activity once less than the configured
    threshold remains.
    """

    KEY_PREFIX = "session:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config

    def _key(self, token: str) -> str:
        return f"{self.KEY_PREFIX}{token}"

    @property
    def _ttl_seconds(self) -> int:
        return self._config.session_expiry_hours * 3600

    def create_session(self, user_id: UUID) -> Session:
        """Random 32-byte token stored for session_expiry_hours."""
        now = now_utc()
        session = Session(
            token=secrets.token_urlsafe(32),
            user_id=user_id,
            created_at=now,
            expires_at=now + timedelta(hours=self._config.session_expiry_hours),
            last_activity_at=now,
        )
        self._valkey.set_json(self._key(session.token), session.to_store(), expire_seconds=self._ttl_seconds)
        logger.info("Session created for %s", user_id)
        return session

    def validate_session(self, token: str) -> Session:
        """The live session behind token, extended if it is close to expiry.

        Raises SessionExpiredError for unknown or lapsed tokens.
        """
        data = self._valkey.get_json(self._key(token))
        if data is None:
            raise SessionExpiredError("Session not found or expired")

        session = Session(
            token=token,
            user_id=UUID(data["user_id"]),
            created_at=parse_iso(data["created_at"]),
            expires_at=parse_iso(data["expires_at"]),
            last_activity_at=parse_iso(data["last_activity_at"]),
        )

        now = now_utc()

        # Valkey TTL should already have dropped it
        if now > session.expires_at:
            self._valkey.delete(self._key(token))
            raise SessionExpiredError("Session expired")

        threshold = timedelta(hours=self._config.session_extend_threshold_hours)
        if self._config.session_extend_on_activity and session.expires_at - now < threshold:
            session = self._extend_session(session)

        return session

    def _extend_session(self, session: Session) -> Session:
        now = now_utc()
        updated = session.model_copy(update={
            "expires_at": now + timedelta(hours=self._config.session_expiry_hours),
            "last_activity_at": now,
        })
        self._valkey.set_json(self._key(session.token), updated.to_store(), expire_seconds=self._ttl_seconds)
        return updated

    def revoke_session(self, token: str) -> None:
        """Logout. Unknown tokens are ignored."""
        self._valkey.delete(self._key(token))

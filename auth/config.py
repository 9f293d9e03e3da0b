"""Session configuration."""

import os

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Session configuration.

    Durations are in hours.
    """

    session_expiry_hours: int = Field(
        default=720,  # 30 days
        description="Session lifetime in hours",
        ge=1,
        le=2160,
    )
    session_extend_on_activity: bool = Field(
        default=True,
        description="Whether to extend session expiry on activity",
    )
    session_extend_threshold_hours: int = Field(
        default=24,
        description="Extend session if less than this many hours remaining",
        ge=1,
    )
    cookie_secure: bool = Field(
        default=True,
        description="Send the session cookie over HTTPS only",
    )


def load_auth_config() -> AuthConfig:
    """Build from AUTOSHOP_SESSION_* environment variables."""
    overrides = {}
    env_fields = {
        "AUTOSHOP_SESSION_EXPIRY_HOURS": "session_expiry_hours",
        "AUTOSHOP_SESSION_EXTEND_ON_ACTIVITY": "session_extend_on_activity",
        "AUTOSHOP_SESSION_EXTEND_THRESHOLD_HOURS": "session_extend_threshold_hours",
        "AUTOSHOP_COOKIE_SECURE": "cookie_secure",
    }
    for env_name, field in env_fields.items():
        value = os.getenv(env_name)
        if value:
            overrides[field] = value

    return AuthConfig(**overrides)

"""API test fixtures: the full app over in-memory services with a mocked session."""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from auth.session import SessionManager
from auth.types import Session
from utils.timezone import now_utc


@pytest.fixture
def signed_in():
    """Holds the user id the mocked session resolves to. Tests set it via login."""
    return {"user_id": None}


@pytest.fixture
def mock_session_manager(signed_in):
    def validate(token):
        now = now_utc()
        return Session(
            token=token,
            user_id=signed_in["user_id"],
            created_at=now,
            expires_at=now + timedelta(hours=24),
            last_activity_at=now,
        )

    mock = Mock(spec=SessionManager)
    mock.validate_session.side_effect = validate
    return mock


@pytest.fixture
def app(services, mock_session_manager, sink):
    return create_app(services, mock_session_manager, sink)


@pytest.fixture
def unauthed_client(app):
    """Unauthenticated test client (no session cookie)."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def login(app, signed_in):
    """Return a client signed in as the given profile."""

    def _login(profile):
        signed_in["user_id"] = profile.user_id
        client = TestClient(app, raise_server_exceptions=False)
        client.cookies.set("session_token", "test-token")
        return client

    return _login

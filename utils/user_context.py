"""Carry the authenticated caller's user id through the call stack.

The id is what the identity provider vouches for. Row-level security in the
store and audit attribution both read it from here; roles are never cached in
the context, they are looked up from the caller's profile.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from uuid import UUID

_current_user_id: ContextVar[UUID | None] = ContextVar("current_user_id", default=None)


def current_user_id() -> UUID | None:
    """The caller's user id, or None outside an authenticated request."""
    return _current_user_id.get()


def get_current_user_id() -> UUID:
    """
    Get current user ID from context.

    Raises RuntimeError if no user context is set. Reaching user-scoped
    code without an identity is a wiring bug, not a user error.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "user-scoped code outside of an authenticated request."
        )
    return user_id


def set_current_user_id(user_id: UUID) -> None:
    """Bind the caller for the rest of this context. Called by AuthMiddleware."""
    _current_user_id.set(user_id)


def clear_current_user_id() -> None:
    """Drop the caller binding. Must run in a finally block."""
    _current_user_id.set(None)


@contextmanager
def acting_as(user_id: UUID):
    """
    Temporarily act as a user, restoring the previous caller afterwards.

    Used by tests and by provisioning hooks that run on behalf of a new
    identity before it has a session.

    Example:
        with acting_as(admin.user_id):
            appointment_service.approve(admin, appointment_id)
    """
    token = _current_user_id.set(user_id)
    try:
        yield user_id
    finally:
        _current_user_id.reset(token)

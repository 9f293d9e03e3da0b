"""Tests for the caller context."""

from uuid import uuid4

import pytest

from utils.user_context import (
    acting_as, clear_current_user_id, current_user_id, get_current_user_id, set_current_user_id,
)


class TestCurrentUser:
    """Reading and writing the caller."""

    def test_unset_is_none(self):
        """No caller outside a request."""
        assert current_user_id() is None

    def test_get_without_context_raises(self):
        """get_current_user_id refuses to run unauthenticated."""
        with pytest.raises(RuntimeError, match="No user context"):
            get_current_user_id()

    def test_set_then_clear(self):
        """Set binds, clear unbinds."""
        user_id = uuid4()
        set_current_user_id(user_id)
        assert get_current_user_id() == user_id
        clear_current_user_id()
        assert current_user_id() is None


class TestActingAs:
    """Temporary caller binding."""

    def test_restores_previous_caller(self):
        """The outer caller comes back after the block."""
        outer, inner = uuid4(), uuid4()
        set_current_user_id(outer)
        with acting_as(inner) as bound:
            assert bound == inner
            assert current_user_id() == inner
        assert current_user_id() == outer

    def test_restores_on_exception(self):
        """An exception inside the block still restores the context."""
        with pytest.raises(KeyError):
            with acting_as(uuid4()):
                raise KeyError("boom")
        assert current_user_id() is None

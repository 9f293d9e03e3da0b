"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, parse_iso, parse_slot_time, format_slot_time, add_minutes
from utils.user_context import (
    current_user_id,
    get_current_user_id,
    set_current_user_id,
    clear_current_user_id,
    acting_as,
)

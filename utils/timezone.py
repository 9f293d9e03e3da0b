"""UTC clock and shop-floor slot time handling.

Timestamps are UTC everywhere. Appointment times are wall-clock times of day
stored at minute granularity (seconds always zero); customers enter them in
12-hour form ("9:00 AM") and the store keeps 24-hour form ("09:00:00").
"""

import re
from datetime import date, datetime, time, timedelta, timezone

_TWELVE_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
_TWENTY_FOUR_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return dt.astimezone(timezone.utc)


def parse_slot_time(value: str | time) -> time:
    """
    Normalize a slot time to a 24-hour time with zero seconds.

    Accepts "8:00 AM" / "1:30 pm" style 12-hour strings and "13:30" or
    "13:30:00" 24-hour strings.

    Raises:
        ValueError: If the value is not a recognizable time of day
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)

    match = _TWELVE_HOUR.match(value)
    if match:
        hour, minute, period = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12 or minute > 59:
            raise ValueError(f"Invalid time '{value}'")
        if period == "PM" and hour != 12:
            hour += 12
        elif period == "AM" and hour == 12:
            hour = 0
        return time(hour, minute)

    match = _TWENTY_FOUR_HOUR.match(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise ValueError(f"Invalid time '{value}'")
        return time(hour, minute)

    raise ValueError(f"Invalid time '{value}'. Expected 'H:MM AM/PM'")


def format_slot_time(value: time) -> str:
    """Render a time of day in the customer-facing 12-hour form ("9:30 AM")."""
    period = "PM" if value.hour >= 12 else "AM"
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {period}"


def add_minutes(value: time, minutes: int) -> time:
    """
    Shift a time of day forward.

    Raises ValueError if the result would spill into the next day.
    """
    anchor = datetime.combine(date(2000, 1, 1), value)
    shifted = anchor + timedelta(minutes=minutes)
    if shifted.date() != anchor.date():
        raise ValueError(f"Shifting {value.isoformat()} by {minutes} minutes leaves the day")
    return shifted.time()

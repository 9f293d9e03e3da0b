"""Scheduling configuration."""

import os
from datetime import time
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from utils.timezone import parse_slot_time

DEFAULT_TIME_SLOTS = [
    "8:00 AM", "9:00 AM", "10:00 AM", "11:00 AM",
    "1:00 PM", "2:00 PM", "3:00 PM", "4:00 PM", "5:00 PM",
]


class BookingMode(str, Enum):
    """How a new booking enters the lifecycle."""

    AUTO_APPROVE = "auto_approve"
    MANUAL_REVIEW = "manual_review"


class SchedulingConfig(BaseModel):
    """
    Booking and resolver settings.

    Durations are in minutes, the closing bound is an hour of day.
    """

    booking_mode: BookingMode = Field(
        default=BookingMode.AUTO_APPROVE,
        description="auto_approve resolves a slot and confirms; manual_review leaves it pending",
    )

    # Resolver
    slot_increment_minutes: int = Field(
        default=30,
        description="How far each probe moves the candidate time",
        ge=5,
        le=120,
    )
    max_probe_attempts: int = Field(
        default=10,
        description="Maximum availability checks per booking",
        ge=1,
        le=48,
    )
    business_close_hour: int = Field(
        default=17,
        description="A shifted candidate at or past this hour aborts the search",
        ge=1,
        le=23,
    )
    conflict_retry_limit: int = Field(
        default=3,
        description="Re-resolve attempts when the store reports a slot race",
        ge=0,
        le=10,
    )

    # Booking form
    time_slots: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TIME_SLOTS),
        description="Times a customer may request, 12-hour form",
        min_length=1,
    )
    max_fault_length: int = Field(default=200, ge=1)
    max_reason_length: int = Field(default=500, ge=1)
    min_vehicle_year: int = Field(default=1900, ge=1886)
    max_vehicle_year_ahead: int = Field(
        default=2,
        description="Model years accepted beyond the current calendar year",
        ge=0,
    )

    @field_validator("time_slots")
    @classmethod
    def _slots_parse(cls, value: list[str]) -> list[str]:
        for slot in value:
            parse_slot_time(slot)
        return value

    def slot_times(self) -> list[time]:
        """Configured slots as 24-hour times."""
        return [parse_slot_time(slot) for slot in self.time_slots]


def load_config() -> SchedulingConfig:
    """
    Build configuration from AUTOSHOP_* environment variables.

    Unset variables keep their defaults; invalid values fail at startup.
    """
    overrides = {}
    env_fields = {
        "AUTOSHOP_BOOKING_MODE": "booking_mode",
        "AUTOSHOP_SLOT_INCREMENT_MINUTES": "slot_increment_minutes",
        "AUTOSHOP_MAX_PROBE_ATTEMPTS": "max_probe_attempts",
        "AUTOSHOP_BUSINESS_CLOSE_HOUR": "business_close_hour",
        "AUTOSHOP_CONFLICT_RETRY_LIMIT": "conflict_retry_limit",
    }
    for env_name, field in env_fields.items():
        value = os.getenv(env_name)
        if value:
            overrides[field] = value

    return SchedulingConfig(**overrides)

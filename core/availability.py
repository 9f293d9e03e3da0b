"""
Slot availability and automatic rescheduling.

A slot is a (date, time) pair. It is taken while a pending or approved
appointment sits on it; rejected, in-progress and completed appointments
never block a new booking.

The resolver walks forward from the requested time in fixed increments
until it finds a free slot. The walk is bounded twice: by a probe budget
and by the closing hour. A customer asking for 9:00 AM on a busy morning
gets the nearest later free time, never an earlier one.
"""

import logging
from dataclasses import dataclass
from datetime import date, time

from core.config import SchedulingConfig
from core.errors import NoSlotAvailable
from core.repositories.base import AppointmentRepository
from utils.timezone import add_minutes, format_slot_time, parse_slot_time

logger = logging.getLogger(__name__)


class SlotAvailabilityChecker:
    """Answers whether a slot is free."""

    def __init__(self, appointments: AppointmentRepository):
        self.appointments = appointments

    def is_available(self, appointment_date: date, appointment_time: time | str) -> bool:
        """
        Check a single slot.

        Args:
            appointment_date: Day of the slot
            appointment_time: 24-hour time or a "9:00 AM" style string

        Returns:
            False iff a pending or approved appointment holds exactly this slot
        """
        slot_time = parse_slot_time(appointment_time)
        return not self.appointments.slot_taken(appointment_date, slot_time)


@dataclass(frozen=True)
class Resolution:
    """Where the resolver landed."""

    final_time: time
    was_rescheduled: bool


class AutoRescheduleResolver:
    """
    Greedy forward search for a free slot.

    Usage:
        resolver = AutoRescheduleResolver(SlotAvailabilityChecker(store.appointments), config)
        resolution = resolver.resolve(date(2025, 3, 4), "9:00 AM")
        resolution.final_time        # time(9, 30) if 9:00 was taken
        resolution.was_rescheduled   # True
    """

    def __init__(self, checker: SlotAvailabilityChecker, config: SchedulingConfig):
        self.checker = checker
        self.config = config

    def resolve(
        self,
        appointment_date: date,
        requested_time: time | str,
        after: time | None = None
    ) -> Resolution:
        """
        Find the first free slot at or after the requested time.

        Args:
            appointment_date: Day to search
            requested_time: What the customer asked for
            after: Slot already found taken; the search starts one
                increment past it instead of at requested_time

        Raises:
            NoSlotAvailable: Probe budget spent, or a shifted candidate
                reached the closing hour
        """
        requested = parse_slot_time(requested_time)
        candidate = requested if after is None else self._next(appointment_date, requested, after)

        for _ in range(self.config.max_probe_attempts):
            if self.checker.is_available(appointment_date, candidate):
                was_rescheduled = candidate != requested
                if was_rescheduled:
                    logger.info(
                        "Rescheduled %s %s to %s",
                        appointment_date, format_slot_time(requested), format_slot_time(candidate)
                    )
                return Resolution(final_time=candidate, was_rescheduled=was_rescheduled)
            candidate = self._next(appointment_date, requested, candidate)

        logger.info("Probe budget spent on %s from %s", appointment_date, format_slot_time(requested))
        raise NoSlotAvailable(
            appointment_date, requested,
            "Unable to find an available time slot. Please try a different date."
        )

    def _next(self, appointment_date: date, requested: time, current: time) -> time:
        try:
            candidate = add_minutes(current, self.config.slot_increment_minutes)
        except ValueError:
            candidate = None
        if candidate is None or candidate.hour >= self.config.business_close_hour:
            logger.info("No slot before closing on %s after %s", appointment_date, format_slot_time(requested))
            raise NoSlotAvailable(appointment_date, requested)
        return candidate


def reschedule_note(requested_time: time) -> str:
    """Admin note recorded on an appointment that was moved off its requested time."""
    return (
        f"Original requested time: {format_slot_time(requested_time)}. "
        "Automatically rescheduled due to time conflict."
    )

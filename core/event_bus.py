"""
Synchronous dispatch of shop events to their handlers.

Services publish after the store write and audit entry have landed, so a
failing handler is logged and skipped; it never undoes or fails the booking,
review or status change that raised the event.
"""

import logging
from typing import Callable, Dict, List

from core.events import ShopEvent

logger = logging.getLogger(__name__)

Handler = Callable[[ShopEvent], None]


class EventBus:
    """
    Handlers keyed by event class name, run in registration order.

        bus.subscribe("AppointmentApproved", handle_appointment_approved(sink))
        bus.publish(AppointmentApproved.create(appointment))
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, event_type: str, callback: Handler):
        self._handlers.setdefault(event_type, []).append(callback)

    def publish(self, event: ShopEvent):
        event_type = type(event).__name__
        for callback in self._handlers.get(event_type, []):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "%s handler %s failed (event_id=%s)",
                    event_type,
                    getattr(callback, "__name__", repr(callback)),
                    event.event_id,
                )

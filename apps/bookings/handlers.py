"""Subscribers for booking domain events (run after commit)."""

from __future__ import annotations

import logging

from apps.properties.cache import invalidate_availability
from shared.application.message_bus import MessageBus, message_bus

from .domain.events import BookingAccepted, BookingEvent

logger = logging.getLogger(__name__)


def invalidate_property_availability(event: BookingEvent) -> None:
    if isinstance(event, BookingAccepted):
        return
    invalidate_availability(event.property_id)


def enqueue_status_notification(event: BookingEvent) -> None:
    from .tasks import notify_booking_status_changed

    try:
        notify_booking_status_changed.delay(event.booking_id)
    except Exception:
        # Notification failures never affect the booking state.
        logger.warning(
            "Could not enqueue notification for booking %s (%s)",
            event.booking_id, type(event).__name__, exc_info=True,
        )


def register_handlers(bus: MessageBus = message_bus) -> None:
    bus.register_event_handler(BookingEvent, invalidate_property_availability)
    bus.register_event_handler(BookingEvent, enqueue_status_notification)

"""Message bus subscriptions for booking events."""

from __future__ import annotations

import logging

from shared.application.message_bus import message_bus

from .domain.events import BookingCreated

logger = logging.getLogger(__name__)


@message_bus.subscribe(BookingCreated)
def queue_booking_confirmation(event: BookingCreated) -> None:
    from .tasks import notify_booking_created

    try:
        notify_booking_created.delay(event.booking_id)
    except Exception as exc:
        logger.error(f"Failed to queue confirmation for booking {event.booking_id}: {exc}", exc_info=True)

"""Message bus subscriptions that drive the waitlist from booking and offer events."""

from __future__ import annotations

import logging

from shared.application.message_bus import message_bus
from apps.bookings.domain.events import BookingCreated, SlotFreed

from .domain.events import OfferClosed

logger = logging.getLogger(__name__)


@message_bus.subscribe(SlotFreed)
def offer_freed_slot(event: SlotFreed) -> None:
    from .tasks import offer_freed_slot as offer_task

    offer_task.delay(
        salon_id=event.salon_id,
        employee_id=event.employee_id,
        service_id=event.service_id,
        slot_start=event.slot_start.isoformat(),
        slot_end=event.slot_end.isoformat() if event.slot_end else None,
    )


@message_bus.subscribe(OfferClosed)
def reoffer_closed_slot(event: OfferClosed) -> None:
    from .coordinator import TRIGGER_CHAIN
    from .tasks import offer_freed_slot as offer_task

    logger.info(f"Offer {event.offer_id} closed ({event.reason}), re-offering slot {event.slot_start}")
    offer_task.delay(
        salon_id=event.salon_id,
        employee_id=event.employee_id,
        service_id=event.service_id,
        slot_start=event.slot_start.isoformat(),
        slot_end=event.slot_end.isoformat() if event.slot_end else None,
        trigger=TRIGGER_CHAIN,
    )


@message_bus.subscribe(BookingCreated)
def withdraw_offers_for_booked_slot(event: BookingCreated) -> None:
    from .coordinator import get_coordinator

    get_coordinator().withdraw_offers_for_slot(
        event.employee_id, event.slot_start, event.slot_end, booking_id=event.booking_id
    )

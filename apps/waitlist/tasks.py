"""Celery tasks for the waitlist domain."""

from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task  # type: ignore
from django.db import DatabaseError  # type: ignore
from django.utils.dateparse import parse_datetime  # type: ignore

from .coordinator import TRIGGER_CANCELLATION, FreedSlot, get_coordinator

logger = logging.getLogger(__name__)


@shared_task(
    name="waitlist.offer_freed_slot",
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    max_retries=5,
)
def offer_freed_slot(
    salon_id: int,
    employee_id: int,
    service_id: int,
    slot_start: str,
    slot_end: Optional[str] = None,
    trigger: str = TRIGGER_CANCELLATION,
) -> Optional[int]:
    """
    Offer a freed slot to the next waitlist candidate.

    Returns the id of the pending offer, if any. Storage errors are retried
    with backoff so a freed slot is never silently dropped.
    """
    slot = FreedSlot(
        salon_id=salon_id,
        employee_id=employee_id,
        service_id=service_id,
        start=parse_datetime(slot_start),
        end=parse_datetime(slot_end) if slot_end else None,
    )
    offer = get_coordinator().on_slot_freed(slot, trigger=trigger)
    return offer.pk if offer is not None else None


# ============================================================================
# PERIODIC TASKS (Celery Beat)
# ============================================================================

@shared_task(name="waitlist.sweep_expired_offers")
def sweep_expired_offers() -> dict[str, int]:
    """Expire lapsed claim tokens and cascade to the next candidate. Runs every minute."""
    try:
        return get_coordinator().sweep_expired()
    except DatabaseError as exc:
        logger.error(f"Expired offer sweep failed, retrying next tick: {exc}", exc_info=True)
        return {"processed": 0, "expired": 0, "errors": 1}


@shared_task(name="waitlist.sweep_offer_reminders")
def sweep_offer_reminders() -> dict[str, int]:
    """Remind customers whose offer is about to lapse. Runs every minute."""
    try:
        return get_coordinator().sweep_reminders()
    except DatabaseError as exc:
        logger.error(f"Offer reminder sweep failed, retrying next tick: {exc}", exc_info=True)
        return {"processed": 0, "sent": 0, "errors": 1}


@shared_task(name="waitlist.reactivate_cooldowns")
def reactivate_cooldowns() -> dict[str, int]:
    """Reactivate customers whose cooldown lapsed. Runs every five minutes."""
    try:
        return get_coordinator().reactivate_cooldowns()
    except DatabaseError as exc:
        logger.error(f"Cooldown reactivation failed, retrying next tick: {exc}", exc_info=True)
        return {"reactivated": 0, "offered": 0, "errors": 1}


@shared_task(name="waitlist.sweep_open_slots")
def sweep_open_slots() -> dict[str, int]:
    """Offer freed slots whose offer task never ran or gave up. Runs every two minutes."""
    try:
        return get_coordinator().sweep_open_slots()
    except DatabaseError as exc:
        logger.error(f"Open slot sweep failed, retrying next tick: {exc}", exc_info=True)
        return {"processed": 0, "offered": 0, "errors": 1}

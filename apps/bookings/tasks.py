"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from .models import Booking

logger = logging.getLogger(__name__)


@shared_task(name="bookings.notify_booking_created")
def notify_booking_created(booking_id: int) -> bool:
    """Confirmation email to the customer of a newly admitted booking."""
    try:
        booking = Booking.objects.select_related("salon", "employee", "service").get(id=booking_id)
    except Booking.DoesNotExist:
        logger.error(f"Booking {booking_id} not found for confirmation notification")
        return False

    if not booking.customer_email:
        return False

    from apps.notifications.services import send_booking_confirmation_email

    sent = send_booking_confirmation_email(booking)
    logger.info(f"[NOTIFICATION] Booking {booking_id} confirmation sent: {sent}")
    return sent

"""Notification services for sending emails and SMS messages."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests
from django.conf import settings  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.template.loader import render_to_string  # type: ignore
from django.utils.html import escape, strip_tags  # type: ignore

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking

logger = logging.getLogger(__name__)

SMS_TIMEOUT_SECONDS = 10


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(
    recipient_email: str,
    subject: str,
    template_name: str | None,
    context: dict,
    *,
    html_message: str | None = None,
) -> bool:
    """
    Send a single email.

    Args:
        recipient_email: Recipient address
        subject: Subject line
        template_name: Django template to render (optional)
        context: Template context; context["message"] is the plain body when no template is given
        html_message: Pre-rendered HTML body (optional)

    Returns:
        bool: True if the mail backend accepted the message
    """
    if not recipient_email:
        return False

    try:
        if html_message:
            text_message = strip_tags(html_message)
        elif template_name:
            html_message = render_to_string(template_name, context)
            text_message = strip_tags(html_message)
        else:
            text_message = context.get("message", "")
            html_message = None

        send_mail(
            subject=subject,
            message=text_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            html_message=html_message,
            fail_silently=False,
        )

        logger.info(f"Email sent successfully to {recipient_email}: {subject}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {recipient_email}: {e}", exc_info=True)
        return False


def send_booking_confirmation_email(booking: "Booking") -> bool:
    """Confirmation to the customer once a booking is admitted."""
    subject = f"Your appointment at {booking.salon.name} is booked"

    start = booking.start_time.strftime("%d.%m.%Y %H:%M")
    html_message = f"""
    <html>
    <body>
        <h2>Hello, {escape(booking.customer_name)}!</h2>
        <p>Your appointment is confirmed.</p>

        <ul>
            <li><strong>Service:</strong> {escape(booking.service.name)}</li>
            <li><strong>With:</strong> {escape(booking.employee.full_name)}</li>
            <li><strong>When:</strong> {start}</li>
        </ul>

        <p>See you soon,<br>{escape(booking.salon.name)}</p>
    </body>
    </html>
    """

    return send_email_notification(
        recipient_email=booking.customer_email,
        subject=subject,
        template_name=None,
        context={},
        html_message=html_message,
    )


# ============================================================================
# SMS NOTIFICATIONS
# ============================================================================

def send_sms_notification(phone: str, message: str) -> bool:
    """
    Send an SMS through the HTTP gateway configured in SMS_GATEWAY_URL.

    Returns False when no gateway is configured or the gateway refuses the message.
    """
    if not phone:
        return False

    gateway_url = getattr(settings, "SMS_GATEWAY_URL", "")
    if not gateway_url:
        logger.info(f"[SMS] Gateway not configured, skipping message to {phone}")
        return False

    headers = {}
    token = getattr(settings, "SMS_GATEWAY_TOKEN", "")
    if token:
        headers["Authorization"] = f"Bearer {token}"

    try:
        response = requests.post(
            gateway_url,
            json={"to": phone, "message": message},
            headers=headers,
            timeout=SMS_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error(f"Failed to send SMS to {phone}: {e}", exc_info=True)
        return False

    if response.status_code >= 400:
        logger.error(f"SMS gateway rejected message to {phone}: HTTP {response.status_code}")
        return False

    logger.info(f"SMS sent to {phone}")
    return True

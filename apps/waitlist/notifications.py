"""Delivery of waitlist offers and reminders to customers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.html import escape  # type: ignore
from django.utils.module_loading import import_string  # type: ignore

from apps.notifications.services import send_email_notification, send_sms_notification

logger = logging.getLogger(__name__)

CLAIM_PATH = "/api/v1/waitlist/claim/"


@dataclass(frozen=True)
class DeliveryResult:
    sent: bool
    error: Optional[str] = None


def claim_links(token: str) -> tuple[str, str]:
    """(accept_url, decline_url) for a plaintext claim token."""
    base_url = getattr(settings, "WAITLIST_CLAIM_BASE_URL", "").rstrip("/")
    accept_url = f"{base_url}{CLAIM_PATH}?{urlencode({'action': 'accept', 'token': token})}"
    decline_url = f"{base_url}{CLAIM_PATH}?{urlencode({'action': 'decline', 'token': token})}"
    return accept_url, decline_url


class OfferNotifier(ABC):
    """Channel-agnostic delivery used by the offer coordinator."""

    @abstractmethod
    def send_offer_notification(self, offer, entry, token: str) -> DeliveryResult:
        """Tell the customer a slot is available; must report failure synchronously."""

    @abstractmethod
    def send_reminder(self, offer, entry, token: str) -> DeliveryResult:
        """Remind the customer the offer is about to lapse."""


class EmailSmsOfferNotifier(OfferNotifier):
    """SMS plus email; delivered when at least one channel succeeded."""

    def send_offer_notification(self, offer, entry, token: str) -> DeliveryResult:
        accept_url, decline_url = claim_links(token)
        when = timezone.localtime(offer.slot_start).strftime("%d.%m.%Y %H:%M")
        minutes = max(1, int((offer.token_expires_at - offer.created_at).total_seconds() // 60))
        salon_name = offer.salon.name

        sms_sent = send_sms_notification(
            entry.customer_phone,
            f"Hi {entry.customer_name}! A slot opened at {salon_name} on {when}. "
            f"Confirm within {minutes} minutes: {accept_url} Decline: {decline_url}",
        )
        delivery_copy = (
            "We've also sent this by SMS."
            if sms_sent
            else "We could not deliver an SMS, so we're sending this by email."
        )
        customer_name, salon_html = escape(entry.customer_name), escape(salon_name)
        email_sent = send_email_notification(
            recipient_email=entry.customer_email,
            subject="A slot is available for you!",
            template_name=None,
            context={},
            html_message=(
                f"<p>Hi {customer_name},</p>"
                f"<p>A slot has opened at {salon_html} on {when}.</p>"
                f'<p><a href="{accept_url}">Confirm booking</a> (expires in {minutes} minutes)</p>'
                f'<p><a href="{decline_url}">Decline offer</a></p>'
                f"<p>{delivery_copy}</p>"
            ),
        )
        return self._result(sms_sent, email_sent, "Notification delivery failed")

    def send_reminder(self, offer, entry, token: str) -> DeliveryResult:
        accept_url, decline_url = claim_links(token)
        when = timezone.localtime(offer.slot_start).strftime("%d.%m.%Y %H:%M")

        sms_sent = send_sms_notification(
            entry.customer_phone,
            f"Hi {entry.customer_name}, reminder: your offer for {when} expires soon. "
            f"Confirm: {accept_url} Decline: {decline_url}",
        )
        email_sent = send_email_notification(
            recipient_email=entry.customer_email,
            subject="Reminder: your waitlist offer expires soon",
            template_name=None,
            context={},
            html_message=(
                f"<p>Hi {escape(entry.customer_name)},</p>"
                f"<p>Your offer for {when} expires soon.</p>"
                f'<p><a href="{accept_url}">Confirm booking</a></p>'
                f'<p><a href="{decline_url}">Decline offer</a></p>'
            ),
        )
        return self._result(sms_sent, email_sent, "Reminder delivery failed")

    @staticmethod
    def _result(sms_sent: bool, email_sent: bool, failure: str) -> DeliveryResult:
        if sms_sent or email_sent:
            return DeliveryResult(sent=True)
        return DeliveryResult(sent=False, error=failure)


def get_offer_notifier() -> OfferNotifier:
    path = getattr(settings, "WAITLIST_OFFER_NOTIFIER", "apps.waitlist.notifications.EmailSmsOfferNotifier")
    return import_string(path)()

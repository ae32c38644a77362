"""Tests for the email/SMS offer notifier and the booking confirmation email."""

from __future__ import annotations

from datetime import date, datetime, timezone as dt_timezone

import pytest
from django.core import mail

from apps.bookings.services import reserve_slot
from apps.notifications.services import send_booking_confirmation_email
from apps.waitlist.coordinator import FreedSlot, WaitlistIntake, WaitlistOfferCoordinator
from apps.waitlist.notifications import EmailSmsOfferNotifier

pytestmark = pytest.mark.django_db

DAY = date(2030, 3, 4)
TWO_PM = datetime(2030, 3, 4, 14, 0, tzinfo=dt_timezone.utc)
HOSTILE_NAME = '<script>alert("x")</script> & Co'


def html_body(message):
    return message.alternatives[0][0]


@pytest.fixture
def offer(clock, salon, employee, service):
    coordinator = WaitlistOfferCoordinator(EmailSmsOfferNotifier(), clock=clock)
    coordinator.add_to_waitlist(WaitlistIntake(
        salon_id=salon.pk,
        service_id=service.pk,
        customer_name=HOSTILE_NAME,
        customer_email="ana@example.com",
        preferred_date=DAY,
    ))
    offer = coordinator.on_slot_freed(
        FreedSlot(salon_id=salon.pk, employee_id=employee.pk, service_id=service.pk, start=TWO_PM)
    )
    assert offer is not None
    return offer


def test_offer_email_escapes_customer_supplied_name(offer):
    [message] = mail.outbox
    body = html_body(message)

    assert message.to == ["ana@example.com"]
    assert "<script>" not in body
    assert "&lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt; &amp; Co" in body
    assert "/api/v1/waitlist/claim/?action=accept&token=" in body


def test_reminder_email_escapes_customer_supplied_name(offer):
    mail.outbox.clear()

    result = EmailSmsOfferNotifier().send_reminder(offer, offer.entry, "fresh-token")

    assert result.sent is True
    body = html_body(mail.outbox[0])
    assert "<script>" not in body
    assert "&lt;script&gt;" in body


def test_offer_is_delivered_when_only_email_succeeds(offer):
    # No SMS gateway is configured in the test settings
    assert offer.status == offer.Status.PENDING
    assert len(mail.outbox) == 1


def test_booking_confirmation_escapes_customer_name(salon, employee, service):
    booking = reserve_slot(
        salon=salon,
        employee=employee,
        service=service,
        start_time=TWO_PM,
        customer_name=HOSTILE_NAME,
        customer_email="ana@example.com",
    ).booking

    assert send_booking_confirmation_email(booking) is True

    body = html_body(mail.outbox[0])
    assert "<script>" not in body
    assert "&lt;script&gt;" in body

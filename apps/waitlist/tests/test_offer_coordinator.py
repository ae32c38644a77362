"""Tests for the waitlist offer coordinator state machine."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone as dt_timezone

import pytest

from apps.bookings.models import Booking
from apps.bookings.services import reserve_slot
from apps.waitlist import lifecycle
from apps.waitlist.coordinator import (
    Decision,
    FreedSlot,
    OfferResponseStatus,
    WaitlistIntake,
    WaitlistOfferCoordinator,
    WaitlistValidationError,
)
from apps.waitlist.models import (
    CustomerCooldown,
    WaitlistEntry,
    WaitlistLifecycleEvent,
    WaitlistOffer,
    WaitlistPolicy,
)

pytestmark = pytest.mark.django_db

DAY = date(2030, 3, 4)
TWO_PM = datetime(2030, 3, 4, 14, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def coordinator(notifier, clock):
    return WaitlistOfferCoordinator(notifier, clock=clock)


@pytest.fixture
def slot(salon, employee, service):
    return FreedSlot(salon_id=salon.pk, employee_id=employee.pk, service_id=service.pk, start=TWO_PM)


@pytest.fixture
def join(coordinator, clock, salon, service):
    def make(name, email=None, preferred_date=DAY, **fields):
        entry = coordinator.add_to_waitlist(WaitlistIntake(
            salon_id=salon.pk,
            service_id=service.pk,
            customer_name=name,
            customer_email=email if email is not None else f"{name.lower()}@example.com",
            preferred_date=preferred_date,
            **fields,
        ))
        clock.advance(seconds=1)
        return entry

    return make


def slot_at(slot, hour):
    return FreedSlot(slot.salon_id, slot.employee_id, slot.service_id, slot.start.replace(hour=hour))


# ===== Intake =====

def test_intake_stores_waiting_entry_with_audit(join):
    entry = join("Ana", email="Ana@Example.com ")

    assert entry.status == WaitlistEntry.Status.WAITING
    assert entry.customer_email == "ana@example.com"
    assert entry.customer_key == "ana@example.com"
    assert list(entry.lifecycle_events.values_list("reason", flat=True)) == [lifecycle.ENTRY_CREATED]


def test_intake_requires_a_contact_channel(coordinator, salon, service):
    with pytest.raises(WaitlistValidationError) as excinfo:
        coordinator.add_to_waitlist(WaitlistIntake(
            salon_id=salon.pk, service_id=service.pk, customer_name="Ana", preferred_date=DAY,
        ))

    assert "customer_phone" in excinfo.value.errors


def test_intake_rejects_past_date_and_inverted_window(coordinator, salon, service):
    with pytest.raises(WaitlistValidationError) as excinfo:
        coordinator.add_to_waitlist(WaitlistIntake(
            salon_id=salon.pk,
            service_id=service.pk,
            customer_name="Ana",
            customer_phone="+47 900 00 000",
            preferred_date=DAY - timedelta(days=1),
            preferred_time_start=time(15, 0),
            preferred_time_end=time(14, 0),
        ))

    assert set(excinfo.value.errors) == {"preferred_date", "preferred_time_end"}


def test_intake_rejects_employee_of_another_salon(coordinator, salon, service, owner):
    from apps.salons.models import Employee, Salon

    elsewhere = Salon.objects.create(name="Studio Sør", slug="studio-sor", owner=owner)
    stranger = Employee.objects.create(salon=elsewhere, full_name="Kari Nygaard")

    with pytest.raises(WaitlistValidationError) as excinfo:
        coordinator.add_to_waitlist(WaitlistIntake(
            salon_id=salon.pk, service_id=service.pk, customer_name="Ana",
            customer_email="ana@example.com", preferred_date=DAY, employee_id=stranger.pk,
        ))

    assert excinfo.value.errors == {"employee_id": ["Employee not found in this salon."]}


def test_phone_only_entry_is_keyed_by_digits(join):
    entry = join("Bo", email="", customer_phone="+47 900-11-222")

    assert entry.customer_key == "+4790011222"


# ===== Offering =====

def test_freed_slot_goes_to_first_waiting_entry(coordinator, join, slot, notifier, clock):
    first = join("Ana")
    join("Bo")

    offer = coordinator.on_slot_freed(slot)

    assert offer.entry_id == first.pk
    assert offer.attempt_no == 1
    assert offer.slot_end == TWO_PM + timedelta(minutes=30)
    assert offer.token_expires_at == clock() + timedelta(minutes=15)
    assert notifier.offers == [(offer.pk, first.pk, notifier.token_for(offer.pk))]
    first.refresh_from_db()
    assert first.status == WaitlistEntry.Status.NOTIFIED


def test_token_is_stored_only_as_hash(coordinator, join, slot, notifier):
    join("Ana")

    offer = coordinator.on_slot_freed(slot)

    token = notifier.token_for(offer.pk)
    assert offer.token_hash != token
    assert len(offer.token_hash) == 64


def test_priority_override_jumps_the_queue(coordinator, join, slot):
    join("Ana")
    favourite = join("Bo")
    coordinator.set_priority_override(favourite.pk, 10, "Regular since 2015")

    assert coordinator.on_slot_freed(slot).entry_id == favourite.pk


def test_priority_override_requires_reason_and_is_audited(coordinator, join, owner):
    entry = join("Ana")

    with pytest.raises(WaitlistValidationError):
        coordinator.set_priority_override(entry.pk, 5, "  ")

    coordinator.set_priority_override(entry.pk, 5, "Missed appointment due to our error", actor=owner)

    event = entry.lifecycle_events.get(reason=lifecycle.PRIORITY_OVERRIDE)
    assert event.metadata == {"previous_score": None, "score": 5, "reason": "Missed appointment due to our error"}
    assert event.actor == owner


def test_only_one_pending_offer_per_slot(coordinator, join, slot):
    join("Ana")
    join("Bo")

    assert coordinator.on_slot_freed(slot) is not None
    assert coordinator.on_slot_freed(slot) is None

    assert WaitlistOffer.objects.filter(status=WaitlistOffer.Status.PENDING).count() == 1


def test_entries_must_match_employee_and_time_window(coordinator, join, slot, other_employee):
    join("Ana", employee_id=other_employee.pk)
    join("Bo", preferred_time_start=time(9, 0), preferred_time_end=time(12, 0))
    join("Cy", preferred_date=DAY + timedelta(days=1))
    fits = join("Di", preferred_time_start=time(13, 45), preferred_time_end=time(16, 0))

    assert coordinator.on_slot_freed(slot).entry_id == fits.pk


def test_past_or_taken_slot_is_not_offered(coordinator, join, slot, salon, employee, service, clock):
    join("Ana")

    assert coordinator.on_slot_freed(FreedSlot(salon.pk, employee.pk, service.pk, clock())) is None

    reserve_slot(salon=salon, employee=employee, service=service, start_time=TWO_PM, customer_name="Walk In")
    assert coordinator.on_slot_freed(slot) is None
    assert not WaitlistOffer.objects.exists()


def test_failed_delivery_moves_on_to_next_candidate(coordinator, join, slot, notifier):
    unreachable = join("Ana")
    second = join("Bo")
    notifier.fail_entry_ids.add(unreachable.pk)

    offer = coordinator.on_slot_freed(slot)

    assert offer.entry_id == second.pk
    assert offer.attempt_no == 2
    failed = WaitlistOffer.objects.get(entry=unreachable)
    assert failed.status == WaitlistOffer.Status.NOTIFICATION_FAILED
    assert failed.last_error == "SMS gateway down"
    unreachable.refresh_from_db()
    assert unreachable.status == WaitlistEntry.Status.WAITING
    assert not CustomerCooldown.objects.exists()


# ===== Responses =====

def test_accept_books_the_slot(coordinator, join, slot, notifier, clock):
    entry = join("Ana")
    offer = coordinator.on_slot_freed(slot)
    clock.advance(minutes=3)

    response = coordinator.respond(notifier.token_for(offer.pk), "accept")

    assert response.status == OfferResponseStatus.ACCEPTED
    booking = response.booking
    assert booking.source == Booking.Source.WAITLIST
    assert (booking.start_time, booking.end_time) == (TWO_PM, TWO_PM + timedelta(minutes=30))
    assert response.offer.booking_id == booking.pk
    assert response.offer.responded_at == clock()
    entry.refresh_from_db()
    assert entry.status == WaitlistEntry.Status.BOOKED


def test_token_cannot_be_used_twice(coordinator, join, slot, notifier):
    join("Ana")
    offer = coordinator.on_slot_freed(slot)
    token = notifier.token_for(offer.pk)
    coordinator.respond(token, Decision.ACCEPT)

    again = coordinator.respond(token, Decision.DECLINE)

    assert again.status == OfferResponseStatus.ALREADY_RESPONDED
    assert Booking.objects.count() == 1


def test_unknown_token_is_not_found(coordinator):
    assert coordinator.respond("not-a-token", "accept").status == OfferResponseStatus.NOT_FOUND


def test_expired_token_is_never_accepted(coordinator, join, slot, notifier, clock):
    entry = join("Ana")
    offer = coordinator.on_slot_freed(slot)
    clock.advance(minutes=15, seconds=1)

    response = coordinator.respond(notifier.token_for(offer.pk), "accept")

    assert response.status == OfferResponseStatus.EXPIRED
    assert response.message == "This offer has expired. The slot has been offered to the next customer."
    assert not Booking.objects.exists()
    offer.refresh_from_db()
    assert offer.status == WaitlistOffer.Status.EXPIRED
    entry.refresh_from_db()
    assert entry.status == WaitlistEntry.Status.WAITING
    assert CustomerCooldown.objects.get(customer_key="ana@example.com").decline_count == 1


def test_decline_cools_customer_down_and_next_offer_skips_them(coordinator, join, slot, notifier, clock):
    first = join("Ana")
    second = join("Bo")
    offer = coordinator.on_slot_freed(slot)

    response = coordinator.respond(notifier.token_for(offer.pk), "decline")

    assert response.status == OfferResponseStatus.DECLINED
    cooldown = CustomerCooldown.objects.get(customer_key="ana@example.com")
    assert cooldown.decline_count == 1
    assert cooldown.cooldown_until == clock() + timedelta(minutes=60)
    first.refresh_from_db()
    assert first.status == WaitlistEntry.Status.WAITING

    # Another slot the same day: Ana is still cooling down
    next_offer = coordinator.on_slot_freed(slot_at(slot, 16))
    assert next_offer.entry_id == second.pk
    assert next_offer.attempt_no == 1


def test_reoffer_after_decline_continues_the_cascade(coordinator, join, slot, notifier):
    join("Ana")
    second = join("Bo")
    offer = coordinator.on_slot_freed(slot)
    coordinator.respond(notifier.token_for(offer.pk), "decline")

    next_offer = coordinator.on_slot_freed(slot)

    assert next_offer.entry_id == second.pk
    assert next_offer.attempt_no == 2


def test_reaching_decline_threshold_applies_passive_cooldown(coordinator, join, slot, notifier, clock):
    entry = join("Ana")

    for hour in (14, 15, 16):
        offer = coordinator.on_slot_freed(slot_at(slot, hour))
        assert offer.entry_id == entry.pk
        coordinator.respond(notifier.token_for(offer.pk), "decline")
        if hour < 16:
            clock.advance(minutes=62)

    cooldown = CustomerCooldown.objects.get(customer_key="ana@example.com")
    assert cooldown.cooldown_reason == "passive_threshold"
    assert cooldown.decline_count == 0
    assert cooldown.cooldown_until == clock() + timedelta(days=7)
    last = entry.lifecycle_events.filter(reason=lifecycle.OFFER_DECLINED).last()
    assert last.metadata["passive_applied"] is True
    assert last.metadata["decline_count"] == 3


def test_accept_after_slot_was_taken_keeps_customer_waiting(coordinator, join, slot, notifier, salon, employee, service):
    entry = join("Ana")
    offer = coordinator.on_slot_freed(slot)
    Booking.objects.create(
        salon=salon, employee=employee, service=service, customer_name="Phone booking",
        start_time=TWO_PM + timedelta(minutes=15), end_time=TWO_PM + timedelta(minutes=45),
    )

    response = coordinator.respond(notifier.token_for(offer.pk), "accept")

    assert response.status == OfferResponseStatus.SLOT_UNAVAILABLE
    offer.refresh_from_db()
    assert offer.status == WaitlistOffer.Status.CANCELLED
    assert offer.booking_id is None
    entry.refresh_from_db()
    assert entry.status == WaitlistEntry.Status.WAITING
    assert not CustomerCooldown.objects.exists()


def test_withdraw_cancels_overlapping_pending_offers(coordinator, join, slot, employee):
    entry = join("Ana")
    offer = coordinator.on_slot_freed(slot)

    withdrawn = coordinator.withdraw_offers_for_slot(
        employee.pk, TWO_PM + timedelta(minutes=10), TWO_PM + timedelta(minutes=40), booking_id=99
    )

    assert withdrawn == 1
    offer.refresh_from_db()
    assert offer.status == WaitlistOffer.Status.CANCELLED
    entry.refresh_from_db()
    assert entry.status == WaitlistEntry.Status.WAITING
    event = entry.lifecycle_events.get(reason=lifecycle.OFFER_WITHDRAWN)
    assert event.metadata["booking_id"] == 99
    assert not CustomerCooldown.objects.exists()


def test_withdraw_ignores_adjacent_slots(coordinator, join, slot, employee):
    join("Ana")
    coordinator.on_slot_freed(slot)

    assert coordinator.withdraw_offers_for_slot(employee.pk, TWO_PM + timedelta(minutes=30), TWO_PM + timedelta(hours=1)) == 0


def test_cancel_entry_cancels_its_pending_offer(coordinator, join, slot):
    entry = join("Ana")
    offer = coordinator.on_slot_freed(slot)

    assert coordinator.cancel_entry(entry.pk, reason="Found another salon") is True
    assert coordinator.cancel_entry(entry.pk) is False

    entry.refresh_from_db()
    offer.refresh_from_db()
    assert entry.status == WaitlistEntry.Status.CANCELLED
    assert offer.status == WaitlistOffer.Status.CANCELLED
    event = entry.lifecycle_events.get(reason=lifecycle.ENTRY_CANCELLED)
    assert event.metadata["cancelled_offer_ids"] == [offer.pk]


def test_customer_cancels_with_intake_token(coordinator, join):
    entry = join("Ana")

    assert coordinator.cancel_entry_by_token("not-a-token") == (None, False)
    cancelled, done = coordinator.cancel_entry_by_token(entry.cancel_token)
    again, done_again = coordinator.cancel_entry_by_token(entry.cancel_token)

    assert (cancelled.pk, done) == (entry.pk, True)
    assert (again.status, done_again) == (WaitlistEntry.Status.CANCELLED, False)
    assert WaitlistEntry.objects.filter(pk=entry.pk).values_list("cancel_token_hash", flat=True).get() != entry.cancel_token


# ===== Sweeps =====

def test_sweep_expires_lapsed_offers_only(coordinator, join, slot, clock):
    join("Ana")
    join("Bo")
    lapsing = coordinator.on_slot_freed(slot)
    clock.advance(minutes=10)
    fresh = coordinator.on_slot_freed(slot_at(slot, 16))
    clock.advance(minutes=6)

    assert coordinator.sweep_expired() == {"processed": 1, "expired": 1, "errors": 0}

    lapsing.refresh_from_db()
    fresh.refresh_from_db()
    assert lapsing.status == WaitlistOffer.Status.EXPIRED
    assert fresh.status == WaitlistOffer.Status.PENDING
    assert coordinator.sweep_expired() == {"processed": 0, "expired": 0, "errors": 0}


def test_reminder_rotates_claim_token(coordinator, join, slot, notifier, clock):
    join("Ana")
    offer = coordinator.on_slot_freed(slot)
    original = notifier.token_for(offer.pk)

    assert coordinator.sweep_reminders()["processed"] == 0
    clock.advance(minutes=6)
    assert coordinator.sweep_reminders() == {"processed": 1, "sent": 1, "errors": 0}
    assert coordinator.sweep_reminders()["processed"] == 0

    (_, _, reminder_token), = notifier.reminders
    assert coordinator.respond(original, "accept").status == OfferResponseStatus.NOT_FOUND
    assert coordinator.respond(reminder_token, "accept").status == OfferResponseStatus.ACCEPTED


def test_failed_reminder_keeps_original_token(coordinator, join, slot, notifier, clock):
    join("Ana")
    offer = coordinator.on_slot_freed(slot)
    notifier.fail_reminders = True
    clock.advance(minutes=6)

    assert coordinator.sweep_reminders() == {"processed": 1, "sent": 0, "errors": 1}

    offer.refresh_from_db()
    assert offer.reminder_sent_at == clock()
    assert offer.last_error == "Reminder delivery failed"
    assert coordinator.respond(notifier.token_for(offer.pk), "decline").status == OfferResponseStatus.DECLINED


def test_reminder_batch_is_not_starved_by_offers_not_yet_due(notifier, clock, join, slot, salon, service):
    from apps.salons.models import Service

    WaitlistPolicy.objects.create(salon=salon, service=service, reminder_after_minutes=60)
    colour = Service.objects.create(salon=salon, name="Colour", duration_minutes=30)
    coordinator = WaitlistOfferCoordinator(notifier, clock=clock, batch_size=1)

    join("Ana")
    slow = coordinator.on_slot_freed(slot)
    coordinator.add_to_waitlist(WaitlistIntake(
        salon_id=salon.pk, service_id=colour.pk, customer_name="Bo",
        customer_email="bo@example.com", preferred_date=DAY,
    ))
    clock.advance(seconds=1)
    due = coordinator.on_slot_freed(FreedSlot(salon.pk, slot.employee_id, colour.pk, slot.start.replace(hour=15)))
    assert slow.created_at < due.created_at

    clock.advance(minutes=6)

    assert coordinator.sweep_reminders() == {"processed": 1, "sent": 1, "errors": 0}
    assert [pk for pk, _, _ in notifier.reminders] == [due.pk]


def test_reactivation_marks_lapsed_cooldowns(coordinator, join, slot, notifier, clock):
    entry = join("Ana")
    offer = coordinator.on_slot_freed(slot)
    coordinator.respond(notifier.token_for(offer.pk), "decline")

    assert coordinator.reactivate_cooldowns()["reactivated"] == 0
    clock.advance(minutes=61)
    assert coordinator.reactivate_cooldowns() == {"reactivated": 1, "offered": 0, "errors": 0}
    assert coordinator.reactivate_cooldowns()["reactivated"] == 0

    assert CustomerCooldown.objects.get().reactivated_at == clock()
    assert entry.lifecycle_events.filter(reason=lifecycle.COOLDOWN_REACTIVATED).count() == 1


def test_reactivation_can_offer_open_slots(coordinator, join, slot, notifier, clock, settings, salon, employee, service):
    settings.WAITLIST_DEFAULT_POLICY = {"auto_notify_on_reactivation": True}
    entry = join("Ana")
    offer = coordinator.on_slot_freed(slot)
    coordinator.respond(notifier.token_for(offer.pk), "decline")

    # Freed while Ana was cooling down and nobody else was waiting
    later = reserve_slot(
        salon=salon, employee=employee, service=service, start_time=TWO_PM.replace(hour=16), customer_name="Cy"
    ).booking
    Booking.objects.filter(pk=later.pk).update(status=Booking.Status.CANCELLED)
    assert coordinator.on_slot_freed(slot_at(slot, 16)) is None

    clock.advance(minutes=61)
    assert coordinator.reactivate_cooldowns() == {"reactivated": 1, "offered": 1, "errors": 0}

    new_offer = WaitlistOffer.objects.get(status=WaitlistOffer.Status.PENDING)
    assert new_offer.entry_id == entry.pk
    assert new_offer.slot_start == TWO_PM.replace(hour=16)
    created = entry.lifecycle_events.filter(reason=lifecycle.OFFER_CREATED).last()
    assert created.metadata["trigger"] == "cooldown_reactivation"


def test_lifecycle_trail_of_a_booked_entry(coordinator, join, slot, notifier):
    entry = join("Ana")
    offer = coordinator.on_slot_freed(slot)
    coordinator.respond(notifier.token_for(offer.pk), "accept")

    trail = list(
        WaitlistLifecycleEvent.objects.filter(entry=entry).values_list("from_status", "to_status", "reason")
    )
    assert trail == [
        ("", "waiting", lifecycle.ENTRY_CREATED),
        ("waiting", "notified", lifecycle.OFFER_CREATED),
        ("notified", "booked", lifecycle.OFFER_ACCEPTED),
    ]

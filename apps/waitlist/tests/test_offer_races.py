"""Offer creation and acceptance when two workers act on the same slot or token."""

from __future__ import annotations

import threading
from datetime import date, datetime, timezone as dt_timezone
from unittest import mock

import pytest
from django.db import connection

from apps.bookings.models import Booking
from apps.waitlist import lifecycle
from apps.waitlist.coordinator import FreedSlot, OfferResponseStatus, WaitlistIntake, WaitlistOfferCoordinator
from apps.waitlist.models import WaitlistEntry, WaitlistOffer

DAY = date(2030, 3, 4)
TWO_PM = datetime(2030, 3, 4, 14, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def coordinator(notifier, clock):
    return WaitlistOfferCoordinator(notifier, clock=clock)


@pytest.fixture
def slot(salon, employee, service):
    return FreedSlot(salon_id=salon.pk, employee_id=employee.pk, service_id=service.pk, start=TWO_PM)


@pytest.fixture
def waiting(coordinator, clock, salon, service):
    entries = []
    for name in ("Ana", "Bo"):
        entries.append(coordinator.add_to_waitlist(WaitlistIntake(
            salon_id=salon.pk,
            service_id=service.pk,
            customer_name=name,
            customer_email=f"{name.lower()}@example.com",
            preferred_date=DAY,
        )))
        clock.advance(seconds=1)
    return entries


@pytest.mark.django_db
def test_pending_offer_inserted_by_another_worker_wins(coordinator, waiting, slot, notifier, clock):
    rival, loser = waiting
    rival_worker = WaitlistOfferCoordinator(notifier, clock=clock)

    def candidates_after_rival_offer(freed, now=None):
        # The rival passed the same pending-offer check and inserts first
        assert rival_worker.on_slot_freed(freed) is not None
        return [loser]

    with mock.patch.object(coordinator, "eligible_candidates", side_effect=candidates_after_rival_offer):
        assert coordinator.on_slot_freed(slot) is None

    pending = WaitlistOffer.objects.get(status=WaitlistOffer.Status.PENDING)
    assert pending.entry_id == rival.pk
    assert WaitlistOffer.objects.count() == 1
    loser.refresh_from_db()
    assert loser.status == WaitlistEntry.Status.WAITING
    assert not loser.lifecycle_events.filter(reason=lifecycle.OFFER_CREATED).exists()
    assert [entry_pk for _, entry_pk, _ in notifier.offers] == [rival.pk]


@pytest.mark.django_db
def test_two_accepts_that_both_saw_a_pending_offer_book_once(coordinator, waiting, slot, clock):
    offer = coordinator.on_slot_freed(slot)
    first_view = WaitlistOffer.objects.select_related("entry", "salon", "employee", "service").get(pk=offer.pk)
    second_view = WaitlistOffer.objects.select_related("entry", "salon", "employee", "service").get(pk=offer.pk)

    first = coordinator._accept(first_view, clock())
    second = coordinator._accept(second_view, clock())

    assert first.status == OfferResponseStatus.ACCEPTED
    assert second.status == OfferResponseStatus.ALREADY_RESPONDED
    assert Booking.objects.count() == 1
    assert WaitlistOffer.objects.get(pk=offer.pk).booking_id == first.booking.pk


@pytest.mark.skipif(connection.vendor != "postgresql", reason="needs PostgreSQL for concurrent writers")
@pytest.mark.django_db(transaction=True)
def test_concurrent_accepts_of_one_token_yield_one_acceptance(coordinator, waiting, slot, notifier, clock):
    offer = coordinator.on_slot_freed(slot)
    token = notifier.token_for(offer.pk)
    barrier = threading.Barrier(4)
    statuses = []

    def accept():
        try:
            barrier.wait()
            statuses.append(coordinator.respond(token, "accept").status)
        finally:
            connection.close()

    threads = [threading.Thread(target=accept) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert statuses.count(OfferResponseStatus.ACCEPTED) == 1
    assert statuses.count(OfferResponseStatus.ALREADY_RESPONDED) == 3
    assert Booking.objects.count() == 1

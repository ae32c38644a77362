"""Tests for the slot conflict checker."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from apps.bookings.models import Booking
from apps.bookings.services import SlotConflictError, conflicting_bookings, is_slot_free, reserve_slot

pytestmark = pytest.mark.django_db

TEN = datetime(2030, 3, 5, 10, 0, tzinfo=dt_timezone.utc)


def book(salon, employee, service, start, **fields):
    fields.setdefault("customer_name", "Ana Lind")
    return reserve_slot(salon=salon, employee=employee, service=service, start_time=start, **fields)


def test_reserve_slot_derives_end_from_service_duration(salon, employee, service):
    reservation = book(salon, employee, service, TEN)

    assert reservation.created is True
    assert reservation.booking.end_time == TEN + timedelta(minutes=30)
    assert reservation.booking.status == Booking.Status.CONFIRMED


def test_one_minute_overlap_conflicts(salon, employee, service):
    first = book(salon, employee, service, TEN).booking

    with pytest.raises(SlotConflictError) as excinfo:
        book(salon, employee, service, TEN + timedelta(minutes=29))

    assert excinfo.value.conflicting_booking_id == first.pk
    assert str(excinfo.value) == "This time slot is already booked. Please select another time."
    assert Booking.objects.count() == 1


def test_adjacent_slots_do_not_conflict(salon, employee, service):
    book(salon, employee, service, TEN)

    book(salon, employee, service, TEN + timedelta(minutes=30))
    book(salon, employee, service, TEN - timedelta(minutes=30))

    assert Booking.objects.count() == 3


def test_other_employee_is_not_blocked(salon, employee, other_employee, service):
    book(salon, employee, service, TEN)

    assert book(salon, other_employee, service, TEN).created is True


@pytest.mark.parametrize("status", [Booking.Status.CANCELLED, Booking.Status.NO_SHOW])
def test_cancelled_and_no_show_bookings_do_not_block(salon, employee, service, status):
    booking = book(salon, employee, service, TEN).booking
    Booking.objects.filter(pk=booking.pk).update(status=status)

    assert is_slot_free(employee.pk, TEN, TEN + timedelta(minutes=30))
    assert book(salon, employee, service, TEN).created is True


def test_completed_booking_still_blocks(salon, employee, service):
    booking = book(salon, employee, service, TEN).booking
    Booking.objects.filter(pk=booking.pk).update(status=Booking.Status.COMPLETED)

    assert not is_slot_free(employee.pk, TEN + timedelta(minutes=10), TEN + timedelta(minutes=20))


def test_conflicting_bookings_can_exclude_a_booking(salon, employee, service):
    booking = book(salon, employee, service, TEN).booking

    assert not conflicting_bookings(employee.pk, TEN, TEN + timedelta(minutes=30), exclude_booking_id=booking.pk).exists()


def test_idempotency_key_replays_existing_booking(salon, employee, service):
    first = book(salon, employee, service, TEN, idempotency_key="req-1")

    replay = book(salon, employee, service, TEN, idempotency_key="req-1")

    assert replay.created is False
    assert replay.booking.pk == first.booking.pk
    assert Booking.objects.count() == 1

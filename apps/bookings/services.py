"""Slot conflict checker: the only code path that inserts bookings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.db import IntegrityError, transaction  # type: ignore
from django.db.models import Q  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore

from shared.domain.value_objects import TimeSlot

from .models import Booking

logger = logging.getLogger(__name__)

# SQLSTATE for exclusion_violation
EXCLUSION_VIOLATION = "23P01"


class SlotConflictError(Exception):
    """Raised when the employee is already booked for (part of) the requested slot."""

    default_message = "This time slot is already booked. Please select another time."

    def __init__(self, message: Optional[str] = None, *, conflicting_booking_id=None):
        super().__init__(message or self.default_message)
        self.conflicting_booking_id = conflicting_booking_id


@dataclass(frozen=True)
class Reservation:
    booking: Booking
    # False when an earlier request with the same idempotency key already created it
    created: bool


def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


def _is_exclusion_violation(exc: IntegrityError) -> bool:
    cause = exc.__cause__
    return EXCLUSION_VIOLATION in (getattr(cause, "sqlstate", None), getattr(cause, "pgcode", None))


def conflicting_bookings(employee_id, start: datetime, end: datetime, *, exclude_booking_id=None):
    """Blocking bookings of the employee whose [start, end) overlaps the given range."""

    overlapping_filter = Q(start_time__lt=end) & Q(end_time__gt=start)

    bookings_qs = Booking.objects.filter(
        employee_id=employee_id,
        status__in=Booking.BLOCKING_STATUSES,
    ).filter(overlapping_filter)

    if exclude_booking_id is not None:
        bookings_qs = bookings_qs.exclude(pk=exclude_booking_id)
    return bookings_qs


def is_slot_free(employee_id, start: datetime, end: datetime, *, exclude_booking_id=None) -> bool:
    return not conflicting_bookings(employee_id, start, end, exclude_booking_id=exclude_booking_id).exists()


def ensure_slot_is_free(employee_id, start: datetime, end: datetime, *, exclude_booking_id=None) -> None:
    """Raise SlotConflictError if the employee is busy for any part of [start, end)."""

    bookings_qs = _lock_queryset_if_possible(
        conflicting_bookings(employee_id, start, end, exclude_booking_id=exclude_booking_id)
    )
    conflict = bookings_qs.only("pk").first()
    if conflict is not None:
        raise SlotConflictError(conflicting_booking_id=conflict.pk)


def reserve_slot(
    *,
    salon,
    employee,
    service,
    start_time: datetime,
    idempotency_key: Optional[str] = None,
    **booking_fields,
) -> Reservation:
    """
    Atomically check the slot and insert the booking.

    The employee row is locked for the duration of the transaction, so two
    reservations for the same employee serialize here; on PostgreSQL the
    booking_no_overlap exclusion constraint backs this up.

    Raises:
        SlotConflictError: the slot is no longer free
    """
    from apps.salons.models import Employee

    slot = TimeSlot.starting_at(start_time, service.duration_minutes)

    with transaction.atomic():
        _lock_queryset_if_possible(Employee.objects.filter(pk=employee.pk)).first()

        if idempotency_key:
            existing = Booking.objects.filter(salon=salon, idempotency_key=idempotency_key).first()
            if existing is not None:
                logger.info(f"Idempotent replay of booking {existing.pk} (key {idempotency_key})")
                return Reservation(booking=existing, created=False)

        ensure_slot_is_free(employee.pk, slot.start, slot.end)

        try:
            with transaction.atomic():
                booking = Booking.objects.create(
                    salon=salon,
                    employee=employee,
                    service=service,
                    start_time=slot.start,
                    end_time=slot.end,
                    idempotency_key=idempotency_key or None,
                    **booking_fields,
                )
        except IntegrityError as exc:
            if idempotency_key:
                existing = Booking.objects.filter(salon=salon, idempotency_key=idempotency_key).first()
                if existing is not None:
                    return Reservation(booking=existing, created=False)
            if _is_exclusion_violation(exc):
                raise SlotConflictError() from exc
            raise

    logger.info(f"Reserved {slot} for employee {employee.pk} (booking {booking.pk})")
    return Reservation(booking=booking, created=True)



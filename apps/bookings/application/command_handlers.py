"""
Booking Command Handlers

Use cases of the booking domain. Every booking insert goes through
AdmitBookingHandler, which combines rate limiting with the slot conflict
checker.

Commands:
- AdmitBookingCommand: Admit a booking request (dashboard, public or waitlist)
- CancelBookingCommand: Cancel a booking and free its slot
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging

from django.conf import settings
from django.utils import timezone

from shared.application.uow import DjangoUnitOfWork
from apps.bookings.domain.events import BookingCreated, SlotFreed
from apps.bookings.models import Booking
from apps.bookings.services import SlotConflictError, reserve_slot
from apps.ratelimit.limiter import RateLimitDecision, RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)


class BookingValidationError(Exception):
    """Raised for a malformed or inconsistent booking request."""

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        super().__init__("; ".join(f"{key}: {', '.join(msgs)}" for key, msgs in errors.items()))


# ===== Commands =====

@dataclass
class AdmitBookingCommand:
    """Command to admit a new booking into an employee's schedule"""
    salon_id: int
    employee_id: int
    service_id: int
    start_time: datetime
    customer_name: str
    rate_limit_identifier: str
    customer_email: str = ''
    customer_phone: str = ''
    rate_limit_identifier_type: Optional[str] = None
    action_type: str = 'booking'
    is_walk_in: bool = False
    notes: str = ''
    idempotency_key: Optional[str] = None
    source: str = Booking.Source.DASHBOARD
    created_by_id: Optional[int] = None


@dataclass
class CancelBookingCommand:
    """Command to cancel a booking"""
    booking_id: int
    reason: str = ''


# ===== Results =====

class AdmissionStatus(str, Enum):
    ADMITTED = 'admitted'
    RATE_LIMITED = 'rate_limited'
    CONFLICT = 'conflict'
    INVALID = 'invalid'


@dataclass
class AdmissionResult:
    status: AdmissionStatus
    booking: Optional[Booking] = None
    rate_limit: Optional[RateLimitDecision] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)
    message: str = ''
    # True when an earlier request with the same idempotency key created the booking
    replayed: bool = False

    @property
    def admitted(self) -> bool:
        return self.status == AdmissionStatus.ADMITTED


# ===== Command Handlers =====

class AdmitBookingHandler:
    """
    Handler for AdmitBooking command

    Order of operations:
    1. Validate the request (no rate limit charge for malformed input)
    2. Idempotent replay returns the stored booking uncharged
    3. Check the rate limit
    4. Reserve the slot atomically (employee row lock + overlap check + insert)
    5. Charge the attempt: always on success, on conflict if the policy says so
    """

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], datetime] = timezone.now,
        min_lead_seconds: Optional[int] = None,
    ):
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.clock = clock
        if min_lead_seconds is None:
            min_lead_seconds = getattr(settings, 'BOOKING_MIN_LEAD_SECONDS', 60)
        self.min_lead_seconds = min_lead_seconds

    def handle(self, command: AdmitBookingCommand) -> AdmissionResult:
        logger.info(
            f"Admitting booking for salon {command.salon_id}, employee {command.employee_id}, "
            f"start {command.start_time} ({command.source})"
        )

        try:
            salon, employee, service = self._validate(command)
        except BookingValidationError as exc:
            logger.info(f"Rejected booking request: {exc}")
            return AdmissionResult(status=AdmissionStatus.INVALID, errors=exc.errors, message=str(exc))

        if command.idempotency_key:
            existing = Booking.objects.filter(
                salon_id=salon.pk, idempotency_key=command.idempotency_key
            ).first()
            if existing is not None:
                return AdmissionResult(status=AdmissionStatus.ADMITTED, booking=existing, replayed=True)

        limiter = self.rate_limiter
        identifier = command.rate_limit_identifier
        id_type = command.rate_limit_identifier_type
        decision = limiter.check(identifier, command.action_type, id_type)
        if not decision.allowed:
            logger.warning(
                f"Booking admission rate limited for {command.rate_limit_identifier_type} "
                f"on {command.action_type}"
            )
            return AdmissionResult(
                status=AdmissionStatus.RATE_LIMITED,
                rate_limit=decision,
                message='Too many booking attempts. Please try again later.',
            )

        try:
            with DjangoUnitOfWork() as uow:
                reservation = reserve_slot(
                    salon=salon,
                    employee=employee,
                    service=service,
                    start_time=command.start_time,
                    idempotency_key=command.idempotency_key,
                    customer_name=command.customer_name.strip(),
                    customer_email=command.customer_email.strip(),
                    customer_phone=command.customer_phone.strip(),
                    is_walk_in=command.is_walk_in,
                    notes=command.notes,
                    source=command.source,
                    created_by_id=command.created_by_id,
                )
                booking = reservation.booking
                if reservation.created:
                    uow.add_event(BookingCreated(
                        aggregate_id=str(booking.pk),
                        booking_id=booking.pk,
                        salon_id=booking.salon_id,
                        employee_id=booking.employee_id,
                        service_id=booking.service_id,
                        slot_start=booking.start_time,
                        slot_end=booking.end_time,
                        source=booking.source,
                    ))
        except SlotConflictError as exc:
            if limiter.policy_for(command.action_type).charge_conflicts:
                decision = limiter.increment(identifier, command.action_type, id_type)
            logger.info(
                f"Slot conflict for employee {employee.pk} at {command.start_time}: {exc}"
            )
            return AdmissionResult(
                status=AdmissionStatus.CONFLICT,
                rate_limit=decision,
                message=str(exc),
            )

        if not reservation.created:
            return AdmissionResult(status=AdmissionStatus.ADMITTED, booking=booking, replayed=True)

        decision = limiter.increment(identifier, command.action_type, id_type)
        logger.info(f"Booking {booking.pk} admitted")
        return AdmissionResult(status=AdmissionStatus.ADMITTED, booking=booking, rate_limit=decision)

    def _validate(self, command: AdmitBookingCommand):
        from apps.salons.models import Employee, Salon, Service

        errors: Dict[str, List[str]] = {}

        def add(key, message):
            errors.setdefault(key, []).append(message)

        if not (command.customer_name or '').strip():
            add('customer_name', 'This field is required.')
        if command.start_time is None:
            add('start_time', 'This field is required.')
        elif timezone.is_naive(command.start_time):
            add('start_time', 'A timezone-aware datetime is required.')

        salon = Salon.objects.filter(pk=command.salon_id, is_active=True).first()
        if salon is None:
            add('salon_id', 'Salon not found.')
            raise BookingValidationError(errors)

        employee = Employee.objects.filter(pk=command.employee_id, salon=salon).first()
        if employee is None:
            add('employee_id', 'Employee not found in this salon.')
        elif not employee.is_active:
            add('employee_id', 'Employee is not active.')

        service = Service.objects.filter(pk=command.service_id, salon=salon).first()
        if service is None:
            add('service_id', 'Service not found in this salon.')
        elif not service.is_active:
            add('service_id', 'Service is not active.')

        if employee is not None and service is not None and not employee.can_perform(service):
            add('employee_id', 'Employee does not perform this service.')

        if (
            command.start_time is not None
            and 'start_time' not in errors
            and not command.is_walk_in
            and command.start_time < self.clock() + timedelta(seconds=self.min_lead_seconds)
        ):
            add('start_time', 'Bookings must start in the future.')

        if errors:
            raise BookingValidationError(errors)
        return salon, employee, service


class CancelBookingHandler:
    """
    Handler for CancelBooking command

    The status transition is a single conditional UPDATE, so concurrent
    cancellations free the slot exactly once.
    """

    def __init__(self, clock: Callable[[], datetime] = timezone.now):
        self.clock = clock

    def handle(self, command: CancelBookingCommand) -> bool:
        """Returns True if this call cancelled the booking."""
        now = self.clock()

        with DjangoUnitOfWork() as uow:
            updated = Booking.objects.filter(
                pk=command.booking_id,
                status__in=Booking.CANCELLABLE_STATUSES,
            ).update(
                status=Booking.Status.CANCELLED,
                cancelled_at=now,
                cancellation_reason=command.reason,
                updated_at=now,
            )
            if not updated:
                logger.info(f"Booking {command.booking_id} was not cancellable")
                return False

            booking = Booking.objects.get(pk=command.booking_id)
            uow.add_event(SlotFreed(
                aggregate_id=str(booking.pk),
                salon_id=booking.salon_id,
                employee_id=booking.employee_id,
                service_id=booking.service_id,
                slot_start=booking.start_time,
                slot_end=booking.end_time,
                booking_id=booking.pk,
            ))

        logger.info(f"Booking {command.booking_id} cancelled, slot freed")
        return True

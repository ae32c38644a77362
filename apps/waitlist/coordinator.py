"""
Waitlist Offer Coordinator

Owns the offer state machine:

    pending -> accepted | declined | expired | cancelled | notification_failed

Every transition is a conditional UPDATE on the current status, so
concurrent responders, overlapping sweep ticks and cancellations degrade
to no-ops instead of double transitions. Offers that close without being
accepted publish OfferClosed, and the single re-offer handler walks the
queue to the next candidate for the same slot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Exists, F, OuterRef, Q
from django.db.models.functions import TruncDate
from django.utils import timezone

from shared.application.uow import DjangoUnitOfWork
from apps.bookings.domain.events import BookingCreated
from apps.bookings.models import Booking
from apps.bookings.services import SlotConflictError, is_slot_free, reserve_slot

from . import lifecycle
from .domain.events import OfferClosed
from .models import CustomerCooldown, WaitlistEntry, WaitlistOffer
from .notifications import DeliveryResult, OfferNotifier, get_offer_notifier
from .policy import ResolvedWaitlistPolicy, resolve_waitlist_policy
from .tokens import generate_claim_token, hash_token

logger = logging.getLogger(__name__)

EntryStatus = WaitlistEntry.Status
OfferStatus = WaitlistOffer.Status

OFFER_EXPIRED_MESSAGE = "This offer has expired. The slot has been offered to the next customer."
SLOT_UNAVAILABLE_MESSAGE = "Sorry, this time slot was already booked. You remain on the waitlist."

# Triggers recorded with offer_created
TRIGGER_CANCELLATION = "booking_cancellation"
TRIGGER_CHAIN = "lifecycle_chain"
TRIGGER_REACTIVATION = "cooldown_reactivation"
TRIGGER_SWEEP = "open_slot_sweep"


class WaitlistValidationError(Exception):
    """Raised for a malformed waitlist request."""

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        super().__init__("; ".join(f"{key}: {', '.join(msgs)}" for key, msgs in errors.items()))


class _SlotAlreadyOffered(Exception):
    pass


class _OfferNoLongerPending(Exception):
    pass


@dataclass(frozen=True)
class FreedSlot:
    salon_id: int
    employee_id: int
    service_id: int
    start: datetime
    end: Optional[datetime] = None

    @property
    def date(self) -> date:
        return timezone.localdate(self.start)


@dataclass
class WaitlistIntake:
    salon_id: int
    service_id: int
    customer_name: str
    preferred_date: Optional[date]
    customer_email: str = ''
    customer_phone: str = ''
    employee_id: Optional[int] = None
    preferred_time_start: Optional[time] = None
    preferred_time_end: Optional[time] = None


class Decision(str, Enum):
    ACCEPT = 'accept'
    DECLINE = 'decline'


class OfferResponseStatus(str, Enum):
    ACCEPTED = 'accepted'
    DECLINED = 'declined'
    NOT_FOUND = 'not_found'
    EXPIRED = 'expired'
    ALREADY_RESPONDED = 'already_responded'
    SLOT_UNAVAILABLE = 'slot_unavailable'


@dataclass(frozen=True)
class OfferResponse:
    status: OfferResponseStatus
    offer: Optional[WaitlistOffer] = None
    booking: Optional[Booking] = None
    message: str = ''


def cooldown_key(entry: WaitlistEntry) -> str:
    return entry.customer_key or f"entry:{entry.pk}"


def _freed_slot(booking: Booking) -> FreedSlot:
    return FreedSlot(
        salon_id=booking.salon_id,
        employee_id=booking.employee_id,
        service_id=booking.service_id,
        start=booking.start_time,
        end=booking.end_time,
    )


def _distinct_slots(bookings):
    """Skip repeated cancellations of the same (employee, start)."""
    seen = set()
    for booking in bookings:
        slot_key = (booking.employee_id, booking.start_time)
        if slot_key not in seen:
            seen.add(slot_key)
            yield booking


def _open_slot_bookings(now: datetime):
    """Cancelled future bookings whose slot is free, unoffered and wanted by a waiting entry."""

    pending_offer = WaitlistOffer.objects.filter(
        employee_id=OuterRef('employee_id'), slot_start=OuterRef('start_time'), status=OfferStatus.PENDING
    )
    rebooked = Booking.objects.filter(
        employee_id=OuterRef('employee_id'),
        status__in=Booking.BLOCKING_STATUSES,
        start_time__lt=OuterRef('end_time'),
        end_time__gt=OuterRef('start_time'),
    )
    offered_before = WaitlistOffer.objects.filter(
        entry_id=OuterRef('pk'),
        employee_id=OuterRef(OuterRef('employee_id')),
        slot_start=OuterRef(OuterRef('start_time')),
    )
    waiting = (
        WaitlistEntry.objects.filter(
            salon_id=OuterRef('salon_id'),
            service_id=OuterRef('service_id'),
            status=EntryStatus.WAITING,
            preferred_date=OuterRef('slot_date'),
        )
        .filter(Q(employee__isnull=True) | Q(employee_id=OuterRef('employee_id')))
        .filter(~Exists(offered_before))
    )
    return (
        Booking.objects.filter(status=Booking.Status.CANCELLED, start_time__gt=now)
        .annotate(slot_date=TruncDate('start_time'))
        .filter(~Exists(pending_offer), ~Exists(rebooked), Exists(waiting))
        .order_by('start_time', 'pk')
    )


class WaitlistOfferCoordinator:
    """
    Hands freed slots to waiting customers.

    Candidates are ordered by priority_override_score (descending, nulls
    last), then created_at, then id. attempt_no counts offers per freed
    slot: the n-th offer for (employee, slot_start) has attempt_no n,
    whoever receives it.
    """

    def __init__(
        self,
        notifier: Optional[OfferNotifier] = None,
        *,
        clock: Callable[[], datetime] = timezone.now,
        policy_resolver: Callable[..., ResolvedWaitlistPolicy] = resolve_waitlist_policy,
        batch_size: Optional[int] = None,
    ):
        self.notifier = notifier or get_offer_notifier()
        self.clock = clock
        self.policy_resolver = policy_resolver
        self.batch_size = batch_size or getattr(settings, 'WAITLIST_SWEEP_BATCH_SIZE', 200)

    # ===== Intake =====

    def add_to_waitlist(self, intake: WaitlistIntake, *, actor=None) -> WaitlistEntry:
        """
        Validate and store a waitlist request.

        Raises:
            WaitlistValidationError: missing/invalid fields or unknown salon, service or employee
        """
        from apps.salons.models import Employee, Salon, Service

        errors: Dict[str, List[str]] = {}

        def add(key, message):
            errors.setdefault(key, []).append(message)

        name = (intake.customer_name or '').strip()
        email = (intake.customer_email or '').strip().lower()
        phone = (intake.customer_phone or '').strip()

        if not name:
            add('customer_name', 'This field is required.')
        if not email and not phone:
            add('customer_phone', 'Provide a phone number or an email address.')
        if email:
            try:
                validate_email(email)
            except ValidationError:
                add('customer_email', 'Enter a valid email address.')

        if intake.preferred_date is None:
            add('preferred_date', 'This field is required.')
        elif intake.preferred_date < timezone.localdate(self.clock()):
            add('preferred_date', 'Preferred date cannot be in the past.')

        start, end = intake.preferred_time_start, intake.preferred_time_end
        if start is not None and end is not None and start >= end:
            add('preferred_time_end', 'End time must be after start time.')

        salon = Salon.objects.filter(pk=intake.salon_id, is_active=True).first()
        if salon is None:
            add('salon_id', 'Salon not found.')
            raise WaitlistValidationError(errors)

        service = Service.objects.filter(pk=intake.service_id, salon=salon, is_active=True).first()
        if service is None:
            add('service_id', 'Service not found in this salon.')

        employee = None
        if intake.employee_id is not None:
            employee = Employee.objects.filter(pk=intake.employee_id, salon=salon, is_active=True).first()
            if employee is None:
                add('employee_id', 'Employee not found in this salon.')
            elif service is not None and not employee.can_perform(service):
                add('employee_id', 'Employee does not perform this service.')

        if errors:
            raise WaitlistValidationError(errors)

        now = self.clock()
        cancel_token, cancel_token_hash = generate_claim_token()
        with transaction.atomic():
            entry = WaitlistEntry.objects.create(
                salon=salon,
                service=service,
                employee=employee,
                customer_name=name,
                customer_email=email,
                customer_phone=phone,
                preferred_date=intake.preferred_date,
                preferred_time_start=start,
                preferred_time_end=end,
                status=EntryStatus.WAITING,
                status_changed_at=now,
                created_at=now,
                cancel_token_hash=cancel_token_hash,
            )
            lifecycle.record_lifecycle_event(
                entry, None, EntryStatus.WAITING, lifecycle.ENTRY_CREATED,
                {'employee_id': intake.employee_id}, actor=actor, at=now,
            )
        # Never stored; only the caller that created the entry sees it
        entry.cancel_token = cancel_token
        return entry

    # ===== Offering =====

    def on_slot_freed(self, slot: FreedSlot, *, trigger: str = TRIGGER_CANCELLATION) -> Optional[WaitlistOffer]:
        """
        Offer a freed slot to the best eligible waiting entry.

        Returns the pending offer, or None when the slot is in the past,
        taken, already has a pending offer, or nobody eligible is waiting.
        A failed delivery marks that offer notification_failed and moves on
        to the next candidate. Storage errors propagate to the caller.
        """
        now = self.clock()
        if slot.start <= now:
            logger.info(f"Freed slot {slot.start} for employee {slot.employee_id} is in the past, not offering")
            return None

        if slot.end is None:
            slot = replace(slot, end=self._service_end(slot))

        if WaitlistOffer.objects.filter(
            employee_id=slot.employee_id, slot_start=slot.start, status=OfferStatus.PENDING
        ).exists():
            logger.info(f"Slot {slot.start} for employee {slot.employee_id} already has a pending offer")
            return None

        if not is_slot_free(slot.employee_id, slot.start, slot.end):
            logger.info(f"Slot {slot.start} for employee {slot.employee_id} is no longer free")
            return None

        policy = self.policy_resolver(slot.salon_id, slot.service_id)

        for entry in self.eligible_candidates(slot, now=now):
            try:
                created = self._create_offer(entry, slot, policy, now, trigger)
            except _SlotAlreadyOffered:
                logger.info(f"Lost the race to offer slot {slot.start} for employee {slot.employee_id}")
                return None
            if created is None:
                continue

            offer, token = created
            if self._deliver(offer, entry, token, now):
                return offer

        logger.info(f"No eligible waitlist candidate for slot {slot.start} (employee {slot.employee_id})")
        return None

    def eligible_candidates(self, slot: FreedSlot, *, now: Optional[datetime] = None) -> List[WaitlistEntry]:
        """Waiting entries matching the slot, best first, minus customers in cooldown."""

        now = now or self.clock()
        local_start = timezone.localtime(slot.start)
        local_end = timezone.localtime(slot.end or self._service_end(slot))

        already_offered = WaitlistOffer.objects.filter(
            employee_id=slot.employee_id, slot_start=slot.start
        ).values('entry_id')

        entries = (
            WaitlistEntry.objects.filter(
                salon_id=slot.salon_id,
                service_id=slot.service_id,
                status=EntryStatus.WAITING,
                preferred_date=local_start.date(),
            )
            .filter(Q(employee__isnull=True) | Q(employee_id=slot.employee_id))
            .filter(Q(preferred_time_end__isnull=True) | Q(preferred_time_end__gt=local_start.time()))
            .exclude(pk__in=already_offered)
        )
        if local_end.date() == local_start.date():
            entries = entries.filter(
                Q(preferred_time_start__isnull=True) | Q(preferred_time_start__lt=local_end.time())
            )
        entries = entries.order_by(F('priority_override_score').desc(nulls_last=True), 'created_at', 'id')

        cooling_down = set(
            CustomerCooldown.objects.filter(
                salon_id=slot.salon_id, cooldown_until__gt=now
            ).values_list('customer_key', flat=True)
        )
        return [entry for entry in entries if cooldown_key(entry) not in cooling_down]

    def _service_end(self, slot: FreedSlot) -> datetime:
        from apps.salons.models import Service

        duration = Service.objects.filter(pk=slot.service_id).values_list('duration_minutes', flat=True).first()
        return slot.start + timedelta(minutes=duration or 0)

    def _create_offer(self, entry, slot: FreedSlot, policy: ResolvedWaitlistPolicy, now, trigger):
        """
        Move the entry to notified and insert the pending offer in one transaction.

        Returns (offer, plaintext token), or None if the entry stopped waiting.
        The partial unique index on pending offers is the guard against a
        second pending offer for the same slot.
        """
        token, token_hash = generate_claim_token()
        try:
            with transaction.atomic():
                moved = WaitlistEntry.objects.filter(pk=entry.pk, status=EntryStatus.WAITING).update(
                    status=EntryStatus.NOTIFIED, status_changed_at=now
                )
                if not moved:
                    return None

                attempt_no = WaitlistOffer.objects.filter(
                    employee_id=slot.employee_id, slot_start=slot.start
                ).count() + 1

                offer = WaitlistOffer.objects.create(
                    salon_id=slot.salon_id,
                    entry=entry,
                    service_id=slot.service_id,
                    employee_id=slot.employee_id,
                    slot_date=slot.date,
                    slot_start=slot.start,
                    slot_end=slot.end,
                    token_hash=token_hash,
                    token_expires_at=now + policy.claim_expiry,
                    status=OfferStatus.PENDING,
                    attempt_no=attempt_no,
                    status_changed_at=now,
                    created_at=now,
                )
                entry.status = EntryStatus.NOTIFIED
                lifecycle.record_lifecycle_event(
                    entry, EntryStatus.WAITING, EntryStatus.NOTIFIED, lifecycle.OFFER_CREATED,
                    {
                        'offer_id': offer.pk,
                        'attempt_no': attempt_no,
                        'slot_start': slot.start.isoformat(),
                        'slot_end': slot.end.isoformat() if slot.end else None,
                        'trigger': trigger,
                    },
                    at=now,
                )
        except IntegrityError as exc:
            raise _SlotAlreadyOffered() from exc

        logger.info(
            f"Created offer {offer.pk} (attempt {attempt_no}) for entry {entry.pk}, "
            f"slot {slot.start} employee {slot.employee_id}"
        )
        return offer, token

    def _deliver(self, offer: WaitlistOffer, entry: WaitlistEntry, token: str, now) -> bool:
        try:
            result = self.notifier.send_offer_notification(offer, entry, token)
        except Exception as exc:
            logger.error(f"Offer notifier raised for offer {offer.pk}: {exc}", exc_info=True)
            result = DeliveryResult(sent=False, error=str(exc) or exc.__class__.__name__)

        if result.sent:
            return True

        error = (result.error or 'Notification delivery failed')[:255]
        with transaction.atomic():
            failed = WaitlistOffer.objects.filter(pk=offer.pk, status=OfferStatus.PENDING).update(
                status=OfferStatus.NOTIFICATION_FAILED, last_error=error, status_changed_at=now
            )
            if failed:
                restored = WaitlistEntry.objects.filter(pk=entry.pk, status=EntryStatus.NOTIFIED).update(
                    status=EntryStatus.WAITING, status_changed_at=now
                )
                if restored:
                    lifecycle.record_lifecycle_event(
                        entry, EntryStatus.NOTIFIED, EntryStatus.WAITING, lifecycle.OFFER_NOTIFICATION_FAILED,
                        {'offer_id': offer.pk, 'error': error},
                        at=now,
                    )
        logger.warning(f"Offer {offer.pk} for entry {entry.pk} could not be delivered: {error}")
        return False

    # ===== Customer response =====

    def respond(self, token: str, decision) -> OfferResponse:
        """
        Accept or decline an offer by its claim token.

        An offer whose token_expires_at has passed is expired on the spot
        and never accepted, whether or not the sweep has reached it yet.
        """
        decision = Decision(decision)
        offer = (
            WaitlistOffer.objects.select_related('entry', 'salon', 'employee', 'service')
            .filter(token_hash=hash_token(token or ''))
            .first()
        )
        if offer is None:
            return OfferResponse(OfferResponseStatus.NOT_FOUND, message='This offer link is not valid.')

        now = self.clock()
        if offer.is_pending and now > offer.token_expires_at:
            self._close_offer(offer, OfferStatus.EXPIRED, lifecycle.OFFER_TIMEOUT, now, counts_as_decline=True)
            offer.refresh_from_db()
            return self._not_pending_response(offer)

        if not offer.is_pending:
            return self._not_pending_response(offer)

        if decision is Decision.DECLINE:
            if not self._close_offer(offer, OfferStatus.DECLINED, lifecycle.OFFER_DECLINED, now, counts_as_decline=True):
                offer.refresh_from_db()
                return self._not_pending_response(offer)
            return OfferResponse(OfferResponseStatus.DECLINED, offer, message='You declined the offer.')

        return self._accept(offer, now)

    def _accept(self, offer: WaitlistOffer, now) -> OfferResponse:
        entry = offer.entry
        try:
            with DjangoUnitOfWork() as uow:
                claimed = WaitlistOffer.objects.filter(
                    pk=offer.pk, status=OfferStatus.PENDING, token_expires_at__gte=now
                ).update(status=OfferStatus.ACCEPTED, status_changed_at=now)
                if not claimed:
                    raise _OfferNoLongerPending()

                reservation = reserve_slot(
                    salon=offer.salon,
                    employee=offer.employee,
                    service=offer.service,
                    start_time=offer.slot_start,
                    idempotency_key=f"waitlist-offer-{offer.pk}",
                    customer_name=entry.customer_name,
                    customer_email=entry.customer_email,
                    customer_phone=entry.customer_phone,
                    source=Booking.Source.WAITLIST,
                )
                booking = reservation.booking
                WaitlistOffer.objects.filter(pk=offer.pk).update(booking=booking)

                booked = WaitlistEntry.objects.filter(pk=entry.pk, status=EntryStatus.NOTIFIED).update(
                    status=EntryStatus.BOOKED, status_changed_at=now
                )
                if booked:
                    lifecycle.record_lifecycle_event(
                        entry, EntryStatus.NOTIFIED, EntryStatus.BOOKED, lifecycle.OFFER_ACCEPTED,
                        {'offer_id': offer.pk, 'booking_id': booking.pk},
                        at=now,
                    )
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
        except _OfferNoLongerPending:
            offer.refresh_from_db()
            return self._not_pending_response(offer)
        except SlotConflictError:
            logger.info(f"Offer {offer.pk} accepted but slot {offer.slot_start} was taken meanwhile")
            self._close_offer(
                offer, OfferStatus.CANCELLED, lifecycle.OFFER_WITHDRAWN, now,
                counts_as_decline=False, closed_reason='slot_unavailable',
            )
            offer.refresh_from_db()
            return OfferResponse(OfferResponseStatus.SLOT_UNAVAILABLE, offer, message=SLOT_UNAVAILABLE_MESSAGE)

        offer.refresh_from_db()
        logger.info(f"Offer {offer.pk} accepted, booking {booking.pk}")
        return OfferResponse(OfferResponseStatus.ACCEPTED, offer, booking, message='Your booking is confirmed.')

    @staticmethod
    def _not_pending_response(offer: WaitlistOffer) -> OfferResponse:
        if offer.status == OfferStatus.EXPIRED:
            return OfferResponse(OfferResponseStatus.EXPIRED, offer, message=OFFER_EXPIRED_MESSAGE)
        return OfferResponse(
            OfferResponseStatus.ALREADY_RESPONDED, offer,
            message=f"This offer is no longer open ({offer.status}).",
        )

    # ===== Closing offers =====

    def _close_offer(
        self,
        offer: WaitlistOffer,
        to_status: str,
        reason: str,
        now,
        *,
        counts_as_decline: bool,
        closed_reason: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> bool:
        """
        pending -> to_status, entry back to waiting, OfferClosed after commit.

        Returns False if the offer had already left pending.
        """
        with DjangoUnitOfWork() as uow:
            closed = WaitlistOffer.objects.filter(pk=offer.pk, status=OfferStatus.PENDING).update(
                status=to_status, status_changed_at=now
            )
            if not closed:
                return False

            entry = offer.entry
            details = {'offer_id': offer.pk, 'attempt_no': offer.attempt_no, **(metadata or {})}
            if counts_as_decline:
                details.update(self._register_decline(entry, reason, now))

            restored = WaitlistEntry.objects.filter(pk=entry.pk, status=EntryStatus.NOTIFIED).update(
                status=EntryStatus.WAITING, status_changed_at=now
            )
            if restored:
                lifecycle.record_lifecycle_event(
                    entry, EntryStatus.NOTIFIED, EntryStatus.WAITING, reason, details, at=now,
                )
            uow.add_event(self._closed_event(offer, closed_reason or str(to_status)))

        offer.status = to_status
        offer.status_changed_at = now
        logger.info(f"Offer {offer.pk} closed as {to_status} ({reason})")
        return True

    def _register_decline(self, entry: WaitlistEntry, reason: str, now) -> dict:
        """
        Count a decline or expiry against the customer.

        Every decline starts the short cooldown; reaching the passive
        threshold starts the long one and resets the counter.
        """
        policy = self.policy_resolver(entry.salon_id, entry.service_id)
        cooldown = self._locked_cooldown(entry.salon_id, cooldown_key(entry))

        decline_count = cooldown.decline_count + 1
        passive = decline_count >= policy.passive_decline_threshold
        duration = policy.passive_cooldown if passive else policy.cooldown
        until = now + duration
        if cooldown.cooldown_until is not None and cooldown.cooldown_until > until:
            until = cooldown.cooldown_until

        cooldown.decline_count = 0 if passive else decline_count
        cooldown.cooldown_until = until
        cooldown.cooldown_reason = 'passive_threshold' if passive else reason
        cooldown.reactivated_at = None
        cooldown.save()

        if passive:
            logger.info(f"Customer of entry {entry.pk} reached {decline_count} declines, cooling down until {until}")
        return {
            'decline_count': decline_count,
            'passive_applied': passive,
            'cooldown_minutes': int(duration.total_seconds() // 60),
            'cooldown_until': until.isoformat(),
        }

    @staticmethod
    def _locked_cooldown(salon_id, key: str) -> CustomerCooldown:
        rows = CustomerCooldown.objects.select_for_update().filter(salon_id=salon_id, customer_key=key)
        cooldown = rows.first()
        if cooldown is not None:
            return cooldown
        try:
            with transaction.atomic():
                return CustomerCooldown.objects.create(salon_id=salon_id, customer_key=key)
        except IntegrityError:
            return rows.get()

    @staticmethod
    def _closed_event(offer: WaitlistOffer, reason: str) -> OfferClosed:
        return OfferClosed(
            aggregate_id=str(offer.pk),
            offer_id=offer.pk,
            entry_id=offer.entry_id,
            salon_id=offer.salon_id,
            service_id=offer.service_id,
            employee_id=offer.employee_id,
            slot_date=offer.slot_date,
            slot_start=offer.slot_start,
            slot_end=offer.slot_end,
            reason=reason,
        )

    def withdraw_offers_for_slot(self, employee_id, start: datetime, end: datetime, *, booking_id=None) -> int:
        """Cancel pending offers overlapping a slot that just got booked."""

        now = self.clock()
        offers = (
            WaitlistOffer.objects.select_related('entry')
            .filter(employee_id=employee_id, status=OfferStatus.PENDING, slot_start__lt=end)
            .filter(Q(slot_end__gt=start) | Q(slot_end__isnull=True, slot_start__gte=start))
        )
        withdrawn = 0
        for offer in offers:
            if self._close_offer(
                offer, OfferStatus.CANCELLED, lifecycle.OFFER_WITHDRAWN, now,
                counts_as_decline=False, closed_reason='slot_unavailable',
                metadata={'booking_id': booking_id},
            ):
                withdrawn += 1
        if withdrawn:
            logger.info(f"Withdrew {withdrawn} pending offer(s) for employee {employee_id} at {start}")
        return withdrawn

    # ===== Periodic sweeps =====

    def sweep_expired(self) -> dict[str, int]:
        """Expire pending offers past token_expires_at; each counts as a passive decline."""

        now = self.clock()
        offer_ids = list(
            WaitlistOffer.objects.filter(status=OfferStatus.PENDING, token_expires_at__lt=now)
            .order_by('token_expires_at')
            .values_list('pk', flat=True)[: self.batch_size]
        )

        processed = expired = errors = 0
        for offer_id in offer_ids:
            processed += 1
            try:
                offer = WaitlistOffer.objects.select_related('entry').filter(pk=offer_id).first()
                if offer is not None and self._close_offer(
                    offer, OfferStatus.EXPIRED, lifecycle.OFFER_TIMEOUT, now, counts_as_decline=True
                ):
                    expired += 1
            except DatabaseError as exc:
                errors += 1
                logger.error(f"Failed to expire waitlist offer {offer_id}: {exc}", exc_info=True)

        logger.info(f"Processed expired waitlist offers: processed={processed} expired={expired} errors={errors}")
        return {'processed': processed, 'expired': expired, 'errors': errors}

    def sweep_reminders(self) -> dict[str, int]:
        """One reminder per pending offer once reminder_after_minutes have passed."""

        now = self.clock()
        candidates = (
            WaitlistOffer.objects
            .filter(status=OfferStatus.PENDING, reminder_sent_at__isnull=True, token_expires_at__gt=now)
            .order_by('created_at')
            .values_list('pk', 'salon_id', 'service_id', 'created_at')
        )

        # reminder_after varies per policy, so pick the due offers before batching
        policies: Dict[tuple, ResolvedWaitlistPolicy] = {}
        due_ids = []
        for offer_id, salon_id, service_id, created_at in candidates:
            key = (salon_id, service_id)
            if key not in policies:
                policies[key] = self.policy_resolver(*key)
            if now > created_at + policies[key].reminder_after:
                due_ids.append(offer_id)
                if len(due_ids) >= self.batch_size:
                    break

        offers = (
            WaitlistOffer.objects.select_related('entry', 'salon')
            .filter(pk__in=due_ids)
            .order_by('created_at')
        )

        processed = sent = errors = 0
        for offer in offers:
            processed += 1
            try:
                delivered = self._send_reminder(offer, now)
            except DatabaseError as exc:
                errors += 1
                logger.error(f"Failed to send reminder for waitlist offer {offer.pk}: {exc}", exc_info=True)
                continue
            if delivered:
                sent += 1
            elif delivered is not None:
                errors += 1

        logger.info(f"Processed waitlist offer reminders: processed={processed} sent={sent} errors={errors}")
        return {'processed': processed, 'sent': sent, 'errors': errors}

    def _send_reminder(self, offer: WaitlistOffer, now) -> Optional[bool]:
        """
        Rotate the claim token and deliver the new link.

        Only the hash is stored, so the reminder has to carry a fresh token.
        The previous hash is restored if delivery fails. Returns None when
        another worker got to the offer first.
        """
        previous_hash = offer.token_hash
        token, token_hash = generate_claim_token()
        rotated = WaitlistOffer.objects.filter(
            pk=offer.pk, status=OfferStatus.PENDING, reminder_sent_at__isnull=True
        ).update(token_hash=token_hash, reminder_sent_at=now)
        if not rotated:
            return None

        entry = offer.entry
        try:
            result = self.notifier.send_reminder(offer, entry, token)
        except Exception as exc:
            logger.error(f"Reminder notifier raised for offer {offer.pk}: {exc}", exc_info=True)
            result = DeliveryResult(sent=False, error=str(exc) or exc.__class__.__name__)

        if not result.sent:
            WaitlistOffer.objects.filter(pk=offer.pk, token_hash=token_hash).update(
                token_hash=previous_hash,
                last_error=(result.error or 'Reminder delivery failed')[:255],
            )

        lifecycle.record_lifecycle_event(
            entry, entry.status, entry.status, lifecycle.OFFER_REMINDER_SENT,
            {'offer_id': offer.pk, 'sent': result.sent, 'error': result.error},
            at=now,
        )
        return result.sent

    def reactivate_cooldowns(self) -> dict[str, int]:
        """
        Mark lapsed cooldowns as reactivated.

        With auto_notify_on_reactivation the customer's waiting entries are
        matched against slots freed earlier that are still open.
        """
        now = self.clock()
        lapsed = list(
            CustomerCooldown.objects.filter(
                cooldown_until__isnull=False, cooldown_until__lte=now, reactivated_at__isnull=True
            ).order_by('cooldown_until')[: self.batch_size]
        )

        reactivated = offered = errors = 0
        for cooldown in lapsed:
            try:
                with transaction.atomic():
                    marked = CustomerCooldown.objects.filter(
                        pk=cooldown.pk, reactivated_at__isnull=True, cooldown_until=cooldown.cooldown_until
                    ).update(reactivated_at=now)
                    if not marked:
                        continue
                    entries = list(
                        WaitlistEntry.objects.filter(
                            salon_id=cooldown.salon_id,
                            customer_key=cooldown.customer_key,
                            status=EntryStatus.WAITING,
                        )
                    )
                    for entry in entries:
                        lifecycle.record_lifecycle_event(
                            entry, EntryStatus.WAITING, EntryStatus.WAITING, lifecycle.COOLDOWN_REACTIVATED,
                            {
                                'cooldown_reason': cooldown.cooldown_reason,
                                'cooldown_until': cooldown.cooldown_until.isoformat(),
                            },
                            at=now,
                        )
                reactivated += 1

                for entry in entries:
                    if self.policy_resolver(entry.salon_id, entry.service_id).auto_notify_on_reactivation:
                        if self.offer_open_slots(entry, now=now) is not None:
                            offered += 1
            except DatabaseError as exc:
                errors += 1
                logger.error(f"Failed to reactivate waitlist cooldown {cooldown.pk}: {exc}", exc_info=True)

        logger.info(f"Reactivated waitlist cooldowns: reactivated={reactivated} offered={offered} errors={errors}")
        return {'reactivated': reactivated, 'offered': offered, 'errors': errors}

    def offer_open_slots(self, entry: WaitlistEntry, *, now: Optional[datetime] = None) -> Optional[WaitlistOffer]:
        """Re-run the offer flow for future slots on the entry's day freed by a cancellation."""

        now = now or self.clock()
        freed = Booking.objects.filter(
            salon_id=entry.salon_id,
            service_id=entry.service_id,
            status=Booking.Status.CANCELLED,
            start_time__gt=now,
            start_time__date=entry.preferred_date,
        )
        if entry.employee_id is not None:
            freed = freed.filter(employee_id=entry.employee_id)

        for booking in _distinct_slots(freed.order_by('start_time')):
            offer = self.on_slot_freed(_freed_slot(booking), trigger=TRIGGER_REACTIVATION)
            if offer is not None:
                return offer
        return None

    def sweep_open_slots(self) -> dict[str, int]:
        """
        Offer future cancelled slots that nobody is working on.

        A slot qualifies while it is still free, has no pending offer and a
        matching waiting entry has not been offered it yet. This picks up
        slots whose SlotFreed or OfferClosed never reached the offer task,
        e.g. because the broker was down or the task ran out of retries.
        """
        now = self.clock()
        open_slots = list(_open_slot_bookings(now)[: self.batch_size])

        processed = offered = errors = 0
        for booking in _distinct_slots(open_slots):
            processed += 1
            try:
                if self.on_slot_freed(_freed_slot(booking), trigger=TRIGGER_SWEEP) is not None:
                    offered += 1
            except DatabaseError as exc:
                errors += 1
                logger.error(f"Failed to offer open slot {booking.start_time} (booking {booking.pk}): {exc}", exc_info=True)

        logger.info(f"Swept open waitlist slots: processed={processed} offered={offered} errors={errors}")
        return {'processed': processed, 'offered': offered, 'errors': errors}

    # ===== Staff operations =====

    def set_priority_override(self, entry_id, score: Optional[int], reason: str, *, actor=None) -> WaitlistEntry:
        """
        Persist a manual queue position and audit it.

        Raises:
            WaitlistValidationError: no reason given
            WaitlistEntry.DoesNotExist: unknown entry
        """
        reason = (reason or '').strip()
        if not reason:
            raise WaitlistValidationError({'reason': ['A reason is required for priority overrides.']})

        now = self.clock()
        with transaction.atomic():
            entry = WaitlistEntry.objects.select_for_update().get(pk=entry_id)
            previous = entry.priority_override_score
            entry.priority_override_score = score
            entry.priority_override_reason = reason
            entry.save(update_fields=['priority_override_score', 'priority_override_reason'])
            lifecycle.record_lifecycle_event(
                entry, entry.status, entry.status, lifecycle.PRIORITY_OVERRIDE,
                {'previous_score': previous, 'score': score, 'reason': reason},
                actor=actor, at=now,
            )

        logger.warning(f"Priority override on waitlist entry {entry.pk}: {previous} -> {score} ({reason})")
        return entry

    def cancel_entry(self, entry_id, *, actor=None, reason: str = '') -> bool:
        """waiting|notified -> cancelled; a pending offer of the entry is cancelled and cascades."""

        now = self.clock()
        with DjangoUnitOfWork() as uow:
            entry = WaitlistEntry.objects.filter(pk=entry_id).first()
            if entry is None or entry.status not in (EntryStatus.WAITING, EntryStatus.NOTIFIED):
                return False
            from_status = entry.status

            cancelled = WaitlistEntry.objects.filter(pk=entry.pk, status=from_status).update(
                status=EntryStatus.CANCELLED, status_changed_at=now
            )
            if not cancelled:
                return False

            cancelled_offer_ids = []
            for offer in WaitlistOffer.objects.filter(entry_id=entry.pk, status=OfferStatus.PENDING):
                if WaitlistOffer.objects.filter(pk=offer.pk, status=OfferStatus.PENDING).update(
                    status=OfferStatus.CANCELLED, status_changed_at=now
                ):
                    cancelled_offer_ids.append(offer.pk)
                    uow.add_event(self._closed_event(offer, 'entry_cancelled'))

            lifecycle.record_lifecycle_event(
                entry, from_status, EntryStatus.CANCELLED, lifecycle.ENTRY_CANCELLED,
                {'reason': reason, 'cancelled_offer_ids': cancelled_offer_ids},
                actor=actor, at=now,
            )
        return True

    def cancel_entry_by_token(self, token: str) -> tuple[Optional[WaitlistEntry], bool]:
        """
        Customer-initiated cancellation with the token handed out at intake.

        Returns (entry, cancelled); entry is None for an unknown token.
        """
        entry = WaitlistEntry.objects.filter(cancel_token_hash=hash_token(token or '')).first()
        if entry is None:
            return None, False

        cancelled = self.cancel_entry(entry.pk, reason='customer_request')
        entry.refresh_from_db()
        return entry, cancelled


def get_coordinator(**kwargs) -> WaitlistOfferCoordinator:
    return WaitlistOfferCoordinator(**kwargs)

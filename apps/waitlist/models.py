"""Waitlist models."""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


def build_customer_key(email: str | None, phone: str | None) -> str:
    """Identity used for cooldown accounting: email if known, else phone digits."""

    email = (email or "").strip().lower()
    if email:
        return email
    digits = "".join(ch for ch in (phone or "") if ch.isdigit() or ch == "+")
    return digits


class WaitlistEntry(models.Model):
    """A customer waiting for a slot of a service on a given day."""

    class Status(models.TextChoices):
        WAITING = "waiting", _("Waiting")
        NOTIFIED = "notified", _("Notified")
        BOOKED = "booked", _("Booked")
        EXPIRED = "expired", _("Expired")
        CANCELLED = "cancelled", _("Cancelled")

    TERMINAL_STATUSES = (Status.BOOKED, Status.EXPIRED, Status.CANCELLED)

    salon = models.ForeignKey("salons.Salon", on_delete=models.CASCADE, related_name="waitlist_entries")
    service = models.ForeignKey("salons.Service", on_delete=models.CASCADE, related_name="waitlist_entries")
    # Null means any employee
    employee = models.ForeignKey(
        "salons.Employee",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="waitlist_entries",
    )
    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField(blank=True)
    customer_phone = models.CharField(max_length=32, blank=True)
    customer_key = models.CharField(max_length=255, db_index=True, editable=False)
    preferred_date = models.DateField()
    preferred_time_start = models.TimeField(null=True, blank=True)
    preferred_time_end = models.TimeField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.WAITING)
    priority_override_score = models.IntegerField(null=True, blank=True)
    priority_override_reason = models.CharField(max_length=255, blank=True)
    status_changed_at = models.DateTimeField(default=timezone.now)
    # Lets the customer leave the waitlist; the plaintext is only returned at intake
    cancel_token_hash = models.CharField(max_length=64, unique=True, null=True, blank=True, editable=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "waitlist entries"
        indexes = [
            models.Index(fields=["salon", "service", "status", "preferred_date"], name="waitlist_entry_match_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.customer_name} / {self.service_id} on {self.preferred_date} ({self.status})"

    def save(self, *args, **kwargs):
        self.customer_key = build_customer_key(self.customer_email, self.customer_phone) or self.customer_key
        super().save(*args, **kwargs)

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES


class WaitlistOffer(models.Model):
    """A freed slot offered to one waitlist entry, claimable with a one-time token."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        ACCEPTED = "accepted", _("Accepted")
        DECLINED = "declined", _("Declined")
        EXPIRED = "expired", _("Expired")
        CANCELLED = "cancelled", _("Cancelled")
        NOTIFICATION_FAILED = "notification_failed", _("Notification failed")

    RESPONSE_STATUSES = (Status.ACCEPTED, Status.DECLINED)

    salon = models.ForeignKey("salons.Salon", on_delete=models.CASCADE, related_name="waitlist_offers")
    entry = models.ForeignKey(WaitlistEntry, on_delete=models.CASCADE, related_name="offers")
    service = models.ForeignKey("salons.Service", on_delete=models.CASCADE, related_name="waitlist_offers")
    employee = models.ForeignKey("salons.Employee", on_delete=models.CASCADE, related_name="waitlist_offers")
    slot_date = models.DateField()
    slot_start = models.DateTimeField()
    slot_end = models.DateTimeField(null=True, blank=True)
    token_hash = models.CharField(max_length=64, unique=True)
    token_expires_at = models.DateTimeField()
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.PENDING)
    # 1-based position of this offer in the cascade for (employee, slot_start)
    attempt_no = models.PositiveIntegerField(default=1)
    reminder_sent_at = models.DateTimeField(null=True, blank=True)
    status_changed_at = models.DateTimeField(null=True, blank=True)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="waitlist_offers",
    )
    last_error = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["employee", "slot_start"],
                condition=Q(status="pending"),
                name="waitlist_offer_one_pending_per_slot",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "token_expires_at"], name="waitlist_offer_expiry_idx"),
            models.Index(fields=["employee", "slot_start"], name="waitlist_offer_slot_idx"),
        ]

    def __str__(self) -> str:
        return f"Offer #{self.pk} {self.slot_start:%Y-%m-%d %H:%M} -> entry {self.entry_id} ({self.status})"

    @property
    def responded_at(self):
        """When the customer answered; None unless accepted or declined."""
        if self.status in self.RESPONSE_STATUSES:
            return self.status_changed_at
        return None

    @property
    def is_pending(self) -> bool:
        return self.status == self.Status.PENDING


class CustomerCooldown(models.Model):
    """Decline accounting per customer and salon."""

    salon = models.ForeignKey("salons.Salon", on_delete=models.CASCADE, related_name="waitlist_cooldowns")
    customer_key = models.CharField(max_length=255)
    # Declines and expiries since the last passive cooldown
    decline_count = models.PositiveIntegerField(default=0)
    cooldown_until = models.DateTimeField(null=True, blank=True)
    cooldown_reason = models.CharField(max_length=32, blank=True)
    reactivated_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["salon", "customer_key"], name="waitlist_cooldown_customer_unique"),
        ]
        indexes = [
            models.Index(fields=["cooldown_until"], name="waitlist_cooldown_until_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.customer_key} @ salon {self.salon_id} until {self.cooldown_until}"

    def is_active(self, now) -> bool:
        return self.cooldown_until is not None and now < self.cooldown_until


class WaitlistPolicy(models.Model):
    """
    Policy override for a salon, a service, or a salon+service pair.

    Null fields inherit from the next level: salon+service, salon,
    service, then the WAITLIST_DEFAULT_POLICY setting.
    """

    salon = models.ForeignKey(
        "salons.Salon", on_delete=models.CASCADE, null=True, blank=True, related_name="waitlist_policies"
    )
    service = models.ForeignKey(
        "salons.Service", on_delete=models.CASCADE, null=True, blank=True, related_name="waitlist_policies"
    )
    claim_expiry_minutes = models.PositiveIntegerField(null=True, blank=True)
    reminder_after_minutes = models.PositiveIntegerField(null=True, blank=True)
    cooldown_minutes = models.PositiveIntegerField(null=True, blank=True)
    passive_decline_threshold = models.PositiveIntegerField(null=True, blank=True)
    passive_cooldown_minutes = models.PositiveIntegerField(null=True, blank=True)
    auto_notify_on_reactivation = models.BooleanField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "waitlist policies"
        constraints = [
            models.CheckConstraint(
                condition=Q(salon__isnull=False) | Q(service__isnull=False),
                name="waitlist_policy_has_scope",
            ),
            models.UniqueConstraint(fields=["salon", "service"], name="waitlist_policy_scope_unique"),
        ]

    def __str__(self) -> str:
        return f"Waitlist policy (salon={self.salon_id}, service={self.service_id})"


class WaitlistLifecycleEvent(models.Model):
    """Append-only audit trail of waitlist entry transitions."""

    entry = models.ForeignKey(WaitlistEntry, on_delete=models.CASCADE, related_name="lifecycle_events")
    salon = models.ForeignKey("salons.Salon", on_delete=models.CASCADE, related_name="waitlist_lifecycle_events")
    from_status = models.CharField(max_length=16, blank=True)
    to_status = models.CharField(max_length=16)
    reason = models.CharField(max_length=64)
    metadata = models.JSONField(default=dict, blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="waitlist_lifecycle_events",
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["entry", "created_at"], name="waitlist_event_entry_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.entry_id}: {self.from_status or '-'} -> {self.to_status} ({self.reason})"

"""Booking model."""

from __future__ import annotations

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.value_objects import TimeSlot


class Booking(models.Model):
    """An appointment of one customer with one employee over [start_time, end_time)."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        CONFIRMED = "confirmed", _("Confirmed")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")
        NO_SHOW = "no-show", _("No-show")

    class Source(models.TextChoices):
        DASHBOARD = "dashboard", _("Dashboard")
        PUBLIC = "public", _("Public booking page")
        WAITLIST = "waitlist", _("Waitlist offer")

    # Statuses that occupy the employee's calendar
    BLOCKING_STATUSES = (Status.PENDING, Status.CONFIRMED, Status.COMPLETED)
    # Statuses a booking can be cancelled from
    CANCELLABLE_STATUSES = (Status.PENDING, Status.CONFIRMED)

    salon = models.ForeignKey("salons.Salon", on_delete=models.PROTECT, related_name="bookings")
    employee = models.ForeignKey("salons.Employee", on_delete=models.PROTECT, related_name="bookings")
    service = models.ForeignKey("salons.Service", on_delete=models.PROTECT, related_name="bookings")
    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField(blank=True)
    customer_phone = models.CharField(max_length=32, blank=True)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.CONFIRMED)
    is_walk_in = models.BooleanField(default=False)
    source = models.CharField(max_length=16, choices=Source.choices, default=Source.DASHBOARD)
    idempotency_key = models.CharField(max_length=128, null=True, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_bookings",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["start_time"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F("start_time")),
                name="booking_valid_interval",
            ),
            models.UniqueConstraint(
                fields=["salon", "idempotency_key"],
                condition=models.Q(idempotency_key__isnull=False),
                name="booking_idempotency_key_unique",
            ),
        ]
        indexes = [
            models.Index(fields=["employee", "start_time"], name="booking_employee_start_idx"),
            models.Index(fields=["salon", "status"], name="booking_salon_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.pk} {self.employee_id} {self.start_time:%Y-%m-%d %H:%M}"

    @property
    def slot(self) -> TimeSlot:
        return TimeSlot(self.start_time, self.end_time)

    @property
    def blocks_slot(self) -> bool:
        return self.status in self.BLOCKING_STATUSES

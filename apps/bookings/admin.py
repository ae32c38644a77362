"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "salon",
        "employee",
        "service",
        "customer_name",
        "start_time",
        "end_time",
        "status",
        "source",
    )
    list_filter = ("status", "source", "is_walk_in", "salon")
    search_fields = ("customer_name", "customer_email", "customer_phone", "employee__full_name")
    readonly_fields = ("idempotency_key", "created_at", "updated_at", "cancelled_at")
    list_select_related = ("salon", "employee", "service")

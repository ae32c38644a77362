"""Admin registration for the waitlist."""

from __future__ import annotations

from django.contrib import admin

from .models import CustomerCooldown, WaitlistEntry, WaitlistLifecycleEvent, WaitlistOffer, WaitlistPolicy


class WaitlistLifecycleEventInline(admin.TabularInline):
    model = WaitlistLifecycleEvent
    extra = 0
    can_delete = False
    readonly_fields = ("from_status", "to_status", "reason", "metadata", "actor", "created_at")


@admin.register(WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "salon",
        "service",
        "employee",
        "customer_name",
        "preferred_date",
        "status",
        "priority_override_score",
        "created_at",
    )
    list_filter = ("status", "salon", "preferred_date")
    search_fields = ("customer_name", "customer_email", "customer_phone")
    readonly_fields = ("customer_key", "status_changed_at", "created_at")
    inlines = [WaitlistLifecycleEventInline]


@admin.register(WaitlistOffer)
class WaitlistOfferAdmin(admin.ModelAdmin):
    list_display = ("id", "entry", "employee", "slot_start", "status", "attempt_no", "token_expires_at")
    list_filter = ("status", "salon")
    readonly_fields = ("token_hash", "created_at", "updated_at", "status_changed_at", "reminder_sent_at")


@admin.register(WaitlistPolicy)
class WaitlistPolicyAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "salon",
        "service",
        "claim_expiry_minutes",
        "reminder_after_minutes",
        "cooldown_minutes",
        "passive_decline_threshold",
        "passive_cooldown_minutes",
        "auto_notify_on_reactivation",
    )


@admin.register(CustomerCooldown)
class CustomerCooldownAdmin(admin.ModelAdmin):
    list_display = ("customer_key", "salon", "decline_count", "cooldown_until", "cooldown_reason", "reactivated_at")
    search_fields = ("customer_key",)

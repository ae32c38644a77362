"""Admin registration for rate-limit buckets."""

from __future__ import annotations

from django.contrib import admin

from .models import RateLimitBucket


@admin.register(RateLimitBucket)
class RateLimitBucketAdmin(admin.ModelAdmin):
    list_display = ("action_type", "identifier_type", "identifier", "attempt_count", "window_start", "blocked_until")
    list_filter = ("action_type", "identifier_type")
    search_fields = ("identifier",)
    readonly_fields = ("updated_at",)

"""Durable rate-limit counters."""

from __future__ import annotations

from django.db import models  # type: ignore


class RateLimitBucket(models.Model):
    """One fixed-window counter per (identifier, identifier_type, action_type)."""

    identifier = models.CharField(max_length=255)
    identifier_type = models.CharField(max_length=16)
    action_type = models.CharField(max_length=64)
    attempt_count = models.PositiveIntegerField(default=0)
    window_start = models.DateTimeField()
    blocked_until = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["identifier", "identifier_type", "action_type"],
                name="rate_limit_bucket_identity",
            ),
        ]
        indexes = [
            models.Index(fields=["action_type", "window_start"], name="ratelimit_action_window_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action_type}:{self.identifier_type}:{self.identifier} ({self.attempt_count})"

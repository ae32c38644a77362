"""Append-only audit of waitlist entry transitions."""

from __future__ import annotations

import logging
from typing import Any, Optional

from django.utils import timezone  # type: ignore

from .models import WaitlistEntry, WaitlistLifecycleEvent

logger = logging.getLogger(__name__)

# Reasons recorded on WaitlistLifecycleEvent
ENTRY_CREATED = "entry_created"
OFFER_CREATED = "offer_created"
OFFER_ACCEPTED = "offer_accepted"
OFFER_DECLINED = "offer_declined"
OFFER_TIMEOUT = "offer_timeout"
OFFER_WITHDRAWN = "offer_withdrawn"
OFFER_NOTIFICATION_FAILED = "offer_notification_failed"
OFFER_REMINDER_SENT = "offer_reminder_sent"
COOLDOWN_REACTIVATED = "cooldown_reactivated"
PRIORITY_OVERRIDE = "priority_override"
ENTRY_CANCELLED = "entry_cancelled"


def record_lifecycle_event(
    entry: WaitlistEntry,
    from_status: Optional[str],
    to_status: str,
    reason: str,
    metadata: Optional[dict[str, Any]] = None,
    *,
    actor=None,
    at=None,
) -> WaitlistLifecycleEvent:
    event = WaitlistLifecycleEvent.objects.create(
        entry=entry,
        salon_id=entry.salon_id,
        from_status=from_status or "",
        to_status=to_status,
        reason=reason,
        metadata=metadata or {},
        actor=actor if actor is not None and getattr(actor, "is_authenticated", False) else None,
        created_at=at or timezone.now(),
    )
    logger.info(f"Waitlist entry {entry.pk}: {from_status or '-'} -> {to_status} ({reason})")
    return event

"""Resolution of the effective waitlist policy for a salon/service pair."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Optional

from django.conf import settings  # type: ignore
from django.db.models import Q  # type: ignore

from .models import WaitlistPolicy

SYSTEM_DEFAULT_POLICY = {
    "claim_expiry_minutes": 15,
    "reminder_after_minutes": 5,
    "cooldown_minutes": 60,
    "passive_decline_threshold": 3,
    "passive_cooldown_minutes": 7 * 24 * 60,
    "auto_notify_on_reactivation": False,
}


@dataclass(frozen=True)
class ResolvedWaitlistPolicy:
    claim_expiry_minutes: int
    reminder_after_minutes: int
    cooldown_minutes: int
    passive_decline_threshold: int
    passive_cooldown_minutes: int
    auto_notify_on_reactivation: bool

    @property
    def claim_expiry(self) -> timedelta:
        return timedelta(minutes=self.claim_expiry_minutes)

    @property
    def reminder_after(self) -> timedelta:
        return timedelta(minutes=self.reminder_after_minutes)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(minutes=self.cooldown_minutes)

    @property
    def passive_cooldown(self) -> timedelta:
        return timedelta(minutes=self.passive_cooldown_minutes)


POLICY_FIELDS = tuple(f.name for f in fields(ResolvedWaitlistPolicy))


def system_default_policy() -> ResolvedWaitlistPolicy:
    values = dict(SYSTEM_DEFAULT_POLICY)
    values.update(getattr(settings, "WAITLIST_DEFAULT_POLICY", None) or {})
    return ResolvedWaitlistPolicy(**{name: values[name] for name in POLICY_FIELDS})


def _precedence(row: WaitlistPolicy) -> int:
    if row.salon_id is not None and row.service_id is not None:
        return 0
    if row.salon_id is not None:
        return 1
    return 2


def resolve_waitlist_policy(salon_id, service_id: Optional[int] = None) -> ResolvedWaitlistPolicy:
    """
    Field-by-field coalesce over the override rows that apply:

        salon+service -> salon -> service -> system default

    A null field on a more specific row falls through to the next level.
    """

    scope = Q(salon_id=salon_id, service__isnull=True)
    if service_id is not None:
        scope |= Q(salon_id=salon_id, service_id=service_id) | Q(salon__isnull=True, service_id=service_id)

    rows = sorted(WaitlistPolicy.objects.filter(scope), key=_precedence)
    default = system_default_policy()

    resolved = {}
    for name in POLICY_FIELDS:
        value = next((getattr(row, name) for row in rows if getattr(row, name) is not None), None)
        resolved[name] = getattr(default, name) if value is None else value
    return ResolvedWaitlistPolicy(**resolved)

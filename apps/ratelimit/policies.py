"""Static rate-limit policies per action type."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum

from django.conf import settings  # type: ignore


class FailurePolicy(str, Enum):
    """What the limiter answers when its counter store is unavailable."""

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


@dataclass(frozen=True)
class RateLimitPolicy:
    action_type: str
    identifier_type: str
    max_attempts: int
    window_ms: int
    block_duration_ms: int
    failure_policy: FailurePolicy = FailurePolicy.FAIL_CLOSED
    # Whether a lost slot race still consumes an attempt
    charge_conflicts: bool = True

    def __post_init__(self):
        if self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive for {self.action_type}")
        if self.window_ms <= 0 or self.block_duration_ms < 0:
            raise ValueError(f"Invalid window/block duration for {self.action_type}")

    @property
    def window(self) -> timedelta:
        return timedelta(milliseconds=self.window_ms)

    @property
    def block_duration(self) -> timedelta:
        return timedelta(milliseconds=self.block_duration_ms)


ONE_MINUTE_MS = 60 * 1000
FIVE_MINUTES_MS = 5 * ONE_MINUTE_MS
FIFTEEN_MINUTES_MS = 15 * ONE_MINUTE_MS
THIRTY_MINUTES_MS = 30 * ONE_MINUTE_MS
ONE_HOUR_MS = 60 * ONE_MINUTE_MS

DEFAULT_ACTION = "default"


def _policy(action_type, identifier_type, max_attempts, window_ms, block_duration_ms,
            failure_policy=FailurePolicy.FAIL_CLOSED, **extra) -> RateLimitPolicy:
    return RateLimitPolicy(
        action_type=action_type,
        identifier_type=identifier_type,
        max_attempts=max_attempts,
        window_ms=window_ms,
        block_duration_ms=block_duration_ms,
        failure_policy=failure_policy,
        **extra,
    )


RATE_LIMIT_POLICIES: dict[str, RateLimitPolicy] = {
    policy.action_type: policy
    for policy in (
        # Auth and user-initiated write flows
        _policy("login", "email", 5, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
        _policy("booking", "email", 5, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
        _policy("booking-notifications", "user_id", 10, ONE_MINUTE_MS, THIRTY_MINUTES_MS),
        _policy("booking-cancellation", "user_id", 10, ONE_MINUTE_MS, THIRTY_MINUTES_MS),
        _policy("public-booking-notifications", "ip", 20, ONE_MINUTE_MS, THIRTY_MINUTES_MS),
        _policy("public-booking-cancellation", "ip", 20, ONE_MINUTE_MS, THIRTY_MINUTES_MS),
        _policy("public-contact", "ip", 10, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
        _policy("admin-impersonate", "user_id", 30, ONE_HOUR_MS, ONE_HOUR_MS),
        _policy("settings-test-notification", "user_id", 10, ONE_MINUTE_MS, THIRTY_MINUTES_MS),
        # Waitlist
        _policy("public-waitlist-intake", "email", 5, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
        _policy("waitlist-claim", "ip", 20, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
        _policy("waitlist-priority-override", "user_id", 30, ONE_HOUR_MS, ONE_HOUR_MS),
        _policy("waitlist-cancellation", "user_id", 10, ONE_MINUTE_MS, THIRTY_MINUTES_MS),
        _policy("public-waitlist-cancellation", "ip", 20, ONE_MINUTE_MS, THIRTY_MINUTES_MS),
        # Billing and platform-sensitive endpoints
        _policy("billing-create-customer", "user_id", 10, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
        _policy("billing-create-subscription", "user_id", 5, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
        _policy("billing-update-plan", "user_id", 20, ONE_HOUR_MS, ONE_HOUR_MS),
        _policy("billing-cancel-subscription", "user_id", 5, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
        _policy("billing-update-payment-method", "user_id", 10, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
        # Public reads and external messaging
        _policy("public-booking-data", "ip", 60, ONE_MINUTE_MS, FIVE_MINUTES_MS, FailurePolicy.FAIL_OPEN),
        _policy("whatsapp-send", "user_id", 100, ONE_HOUR_MS, ONE_HOUR_MS),
        _policy(DEFAULT_ACTION, "ip", 10, FIFTEEN_MINUTES_MS, THIRTY_MINUTES_MS),
    )
}


def _apply_override(policy: RateLimitPolicy, override: dict) -> RateLimitPolicy:
    values = dict(override)
    if "failure_policy" in values:
        values["failure_policy"] = FailurePolicy(values["failure_policy"])
    return replace(policy, **values)


def get_policy_table() -> dict[str, RateLimitPolicy]:
    """Built-in table with RATE_LIMIT_POLICIES overrides from settings applied."""

    table = dict(RATE_LIMIT_POLICIES)
    overrides = getattr(settings, "RATE_LIMIT_POLICIES", None) or {}
    for action_type, override in overrides.items():
        base = table.get(action_type) or replace(table[DEFAULT_ACTION], action_type=action_type)
        table[action_type] = _apply_override(base, override)
    return table


def get_rate_limit_policy(action_type: str) -> RateLimitPolicy:
    table = get_policy_table()
    return table.get(action_type) or table[DEFAULT_ACTION]

"""Fixed-window rate limiter with per-action failure policy."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from django.conf import settings  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.module_loading import import_string  # type: ignore

from .policies import FailurePolicy, RateLimitPolicy, get_rate_limit_policy
from .stores import (
    BucketKey,
    BucketState,
    CounterStore,
    InMemoryCounterStore,
    RateLimitStorageError,
    reset_window,
    with_attempt,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a check/increment; the shape every protected endpoint exposes."""

    allowed: bool
    remaining_attempts: int
    reset_time: Optional[datetime]
    blocked: bool
    limit: int
    # True when the answer came from the failure policy or the fallback store
    degraded: bool = False

    def retry_after_seconds(self, now: datetime) -> int:
        if self.reset_time is None:
            return 0
        return max(0, math.ceil((self.reset_time - now).total_seconds()))

    def reset_epoch_seconds(self) -> Optional[int]:
        if self.reset_time is None:
            return None
        return math.ceil(self.reset_time.timestamp())


def normalize_identifier(identifier: str, identifier_type: str) -> str:
    identifier = (identifier or "").strip()
    if identifier_type == "email":
        return identifier.lower()
    return identifier


def _window_expired(state: BucketState, policy: RateLimitPolicy, now: datetime) -> bool:
    return now >= state.window_start + policy.window


def _block_lapsed(state: BucketState, now: datetime) -> bool:
    return state.blocked_until is not None and now >= state.blocked_until


class RateLimiter:
    """
    Admission control keyed by (identifier, identifier_type, action_type).

    Callers check() before doing protected work and increment() only once
    the work was actually attempted, so refused pre-checks are never charged.
    """

    def __init__(
        self,
        store: CounterStore,
        *,
        fallback_store: Optional[CounterStore] = None,
        clock: Callable[[], datetime] = timezone.now,
        policy_lookup: Callable[[str], RateLimitPolicy] = get_rate_limit_policy,
    ):
        self._store = store
        self._fallback_store = fallback_store
        self._clock = clock
        self._policy_lookup = policy_lookup

    def policy_for(self, action_type: str) -> RateLimitPolicy:
        return self._policy_lookup(action_type)

    def _key(self, identifier: str, action_type: str, identifier_type: Optional[str]):
        policy = self.policy_for(action_type)
        id_type = identifier_type or policy.identifier_type
        key = BucketKey(
            identifier=normalize_identifier(identifier, id_type),
            identifier_type=id_type,
            action_type=action_type,
        )
        return policy, key

    # ===== Public API =====

    def check(self, identifier: str, action_type: str, identifier_type: Optional[str] = None) -> RateLimitDecision:
        """Read-only: report whether one more attempt would be admitted."""

        policy, key = self._key(identifier, action_type, identifier_type)
        now = self._clock()

        def run(store: CounterStore) -> RateLimitDecision:
            return self._evaluate(store.load(key), policy, now)

        return self._with_failure_policy(policy, key, now, run, "check")

    def increment(self, identifier: str, action_type: str, identifier_type: Optional[str] = None) -> RateLimitDecision:
        """Consume one attempt, blocking the identity once the limit is exceeded."""

        policy, key = self._key(identifier, action_type, identifier_type)
        now = self._clock()

        def mutation(state: Optional[BucketState]) -> BucketState:
            if state is None or _window_expired(state, policy, now) or _block_lapsed(state, now):
                state = reset_window(now)
            state = with_attempt(state)
            if state.attempt_count > policy.max_attempts:
                state = replace(state, blocked_until=now + policy.block_duration)
            return state

        def run(store: CounterStore) -> RateLimitDecision:
            state = store.mutate(key, mutation, now=now, retain_for=max(policy.window, policy.block_duration))
            if state.blocked_until is not None and now < state.blocked_until:
                return RateLimitDecision(
                    allowed=False,
                    remaining_attempts=0,
                    reset_time=state.blocked_until,
                    blocked=True,
                    limit=policy.max_attempts,
                )
            return RateLimitDecision(
                allowed=True,
                remaining_attempts=max(0, policy.max_attempts - state.attempt_count),
                reset_time=state.window_start + policy.window,
                blocked=False,
                limit=policy.max_attempts,
            )

        decision = self._with_failure_policy(policy, key, now, run, "increment")
        if decision.blocked and not decision.degraded:
            logger.warning(
                f"Rate limit exceeded for {key.action_type} ({key.identifier_type}); "
                f"blocked until {decision.reset_time.isoformat()}"
            )
        return decision

    def reset(self, identifier: str, action_type: str, identifier_type: Optional[str] = None) -> None:
        """Forget the identity's bucket, e.g. after a successful login."""

        policy, key = self._key(identifier, action_type, identifier_type)
        if self._fallback_store is not None:
            self._fallback_store.clear(key)
        try:
            self._store.clear(key)
        except RateLimitStorageError as exc:
            if policy.failure_policy is FailurePolicy.FAIL_CLOSED:
                raise
            logger.warning(f"Could not reset rate limit for {action_type}: {exc}")

    # ===== Internals =====

    def _evaluate(self, state: Optional[BucketState], policy: RateLimitPolicy, now: datetime) -> RateLimitDecision:
        if state is None:
            return RateLimitDecision(
                allowed=True,
                remaining_attempts=policy.max_attempts,
                reset_time=None,
                blocked=False,
                limit=policy.max_attempts,
            )

        if state.blocked_until is not None and now < state.blocked_until:
            return RateLimitDecision(
                allowed=False,
                remaining_attempts=0,
                reset_time=state.blocked_until,
                blocked=True,
                limit=policy.max_attempts,
            )

        if _window_expired(state, policy, now) or _block_lapsed(state, now):
            return RateLimitDecision(
                allowed=True,
                remaining_attempts=policy.max_attempts,
                reset_time=None,
                blocked=False,
                limit=policy.max_attempts,
            )

        remaining = max(0, policy.max_attempts - state.attempt_count)
        return RateLimitDecision(
            allowed=remaining > 0,
            remaining_attempts=remaining,
            reset_time=state.window_start + policy.window,
            blocked=False,
            limit=policy.max_attempts,
        )

    def _with_failure_policy(self, policy, key, now, run, operation) -> RateLimitDecision:
        try:
            return run(self._store)
        except RateLimitStorageError as exc:
            logger.error(
                f"Rate limit store unavailable during {operation} for {key.action_type} "
                f"({policy.failure_policy.value}): {exc}"
            )

        if policy.failure_policy is FailurePolicy.FAIL_OPEN:
            if self._fallback_store is not None:
                return replace(run(self._fallback_store), degraded=True)
            return RateLimitDecision(
                allowed=True,
                remaining_attempts=policy.max_attempts,
                reset_time=None,
                blocked=False,
                limit=policy.max_attempts,
                degraded=True,
            )

        return RateLimitDecision(
            allowed=False,
            remaining_attempts=0,
            reset_time=now + policy.window,
            blocked=False,
            limit=policy.max_attempts,
            degraded=True,
        )


_fallback_store = InMemoryCounterStore()


def get_rate_limiter(**kwargs) -> RateLimiter:
    """Limiter wired from settings: RATE_LIMIT_STORE plus the shared in-memory fallback."""

    store_path = getattr(settings, "RATE_LIMIT_STORE", "apps.ratelimit.stores.DatabaseCounterStore")
    store = kwargs.pop("store", None) or import_string(store_path)()
    kwargs.setdefault("fallback_store", _fallback_store)
    return RateLimiter(store, **kwargs)

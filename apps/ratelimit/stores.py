"""Counter stores backing the rate limiter.

A store only knows how to load and atomically mutate one bucket. The
window and block arithmetic lives in the limiter. Stores signal an
unavailable backend by raising RateLimitStorageError, which the limiter
resolves according to the action's failure policy.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from django.db import DatabaseError, IntegrityError, transaction  # type: ignore

logger = logging.getLogger(__name__)


class RateLimitStorageError(Exception):
    """The counter store could not be read or written."""


@dataclass(frozen=True)
class BucketKey:
    identifier: str
    identifier_type: str
    action_type: str


@dataclass(frozen=True)
class BucketState:
    attempt_count: int
    window_start: datetime
    blocked_until: Optional[datetime] = None


Mutation = Callable[[Optional[BucketState]], BucketState]


class CounterStore(ABC):
    @abstractmethod
    def load(self, key: BucketKey) -> Optional[BucketState]:
        """Current state of the bucket, or None if it was never created."""

    @abstractmethod
    def mutate(
        self,
        key: BucketKey,
        mutation: Mutation,
        *,
        now: Optional[datetime] = None,
        retain_for: Optional[timedelta] = None,
    ) -> BucketState:
        """
        Atomically replace the bucket with mutation(current) and return it.

        retain_for is how long after now the bucket can still affect a
        decision. Stores without their own expiry may drop it after that.
        """

    @abstractmethod
    def clear(self, key: BucketKey) -> None:
        """Forget the bucket."""


class InMemoryCounterStore(CounterStore):
    """
    Process-local store. Used in tests and as the fail-open fallback.

    Buckets mutated with retain_for are evicted on a later mutate once
    both their window and their block are over.
    """

    def __init__(self):
        self._buckets: dict[BucketKey, BucketState] = {}
        self._expires_at: dict[BucketKey, datetime] = {}
        self._lock = threading.Lock()

    def load(self, key: BucketKey) -> Optional[BucketState]:
        with self._lock:
            return self._buckets.get(key)

    def mutate(
        self,
        key: BucketKey,
        mutation: Mutation,
        *,
        now: Optional[datetime] = None,
        retain_for: Optional[timedelta] = None,
    ) -> BucketState:
        with self._lock:
            if now is not None:
                self._evict_expired(now)
            state = mutation(self._buckets.get(key))
            self._buckets[key] = state
            if now is not None and retain_for is not None:
                self._expires_at[key] = now + retain_for
            else:
                self._expires_at.pop(key, None)
            return state

    def clear(self, key: BucketKey) -> None:
        with self._lock:
            self._buckets.pop(key, None)
            self._expires_at.pop(key, None)

    def _evict_expired(self, now: datetime) -> None:
        expired = [key for key, expires_at in self._expires_at.items() if expires_at <= now]
        for key in expired:
            del self._expires_at[key]
            self._buckets.pop(key, None)

    def __len__(self) -> int:
        return len(self._buckets)


class DatabaseCounterStore(CounterStore):
    """Buckets stored in RateLimitBucket rows, mutated under a row lock."""

    def _lookup(self, key: BucketKey) -> dict:
        return {
            "identifier": key.identifier,
            "identifier_type": key.identifier_type,
            "action_type": key.action_type,
        }

    @staticmethod
    def _to_state(bucket) -> BucketState:
        return BucketState(
            attempt_count=bucket.attempt_count,
            window_start=bucket.window_start,
            blocked_until=bucket.blocked_until,
        )

    def load(self, key: BucketKey) -> Optional[BucketState]:
        from .models import RateLimitBucket

        try:
            bucket = RateLimitBucket.objects.filter(**self._lookup(key)).first()
        except DatabaseError as exc:
            raise RateLimitStorageError(f"Failed to load rate limit bucket: {exc}") from exc
        return self._to_state(bucket) if bucket else None

    def mutate(
        self,
        key: BucketKey,
        mutation: Mutation,
        *,
        now: Optional[datetime] = None,
        retain_for: Optional[timedelta] = None,
    ) -> BucketState:
        from .models import RateLimitBucket

        lookup = self._lookup(key)
        try:
            with transaction.atomic():
                bucket = RateLimitBucket.objects.select_for_update().filter(**lookup).first()
                if bucket is None:
                    state = mutation(None)
                    try:
                        with transaction.atomic():
                            RateLimitBucket.objects.create(
                                attempt_count=state.attempt_count,
                                window_start=state.window_start,
                                blocked_until=state.blocked_until,
                                **lookup,
                            )
                        return state
                    except IntegrityError:
                        # Created concurrently; fall through and mutate the winner's row
                        bucket = RateLimitBucket.objects.select_for_update().get(**lookup)

                state = mutation(self._to_state(bucket))
                bucket.attempt_count = state.attempt_count
                bucket.window_start = state.window_start
                bucket.blocked_until = state.blocked_until
                bucket.save(update_fields=["attempt_count", "window_start", "blocked_until", "updated_at"])
                return state
        except DatabaseError as exc:
            raise RateLimitStorageError(f"Failed to update rate limit bucket: {exc}") from exc

    def clear(self, key: BucketKey) -> None:
        from .models import RateLimitBucket

        try:
            RateLimitBucket.objects.filter(**self._lookup(key)).delete()
        except DatabaseError as exc:
            raise RateLimitStorageError(f"Failed to clear rate limit bucket: {exc}") from exc


def reset_window(now: datetime) -> BucketState:
    return BucketState(attempt_count=0, window_start=now, blocked_until=None)


def with_attempt(state: BucketState) -> BucketState:
    return replace(state, attempt_count=state.attempt_count + 1)

"""Tests for the rate-limit response contract and request identity resolution."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.contrib.auth.models import AnonymousUser  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.test import APIRequestFactory  # type: ignore

from apps.ratelimit.http import RateLimitGuard, rate_limit_headers, rate_limited_response
from apps.ratelimit.limiter import RateLimitDecision, RateLimiter
from apps.ratelimit.policies import RateLimitPolicy
from apps.ratelimit.stores import InMemoryCounterStore
from apps.salons.access import rate_limit_identifier

NOW = datetime(2030, 3, 4, 8, 0, tzinfo=dt_timezone.utc)


def blocked_decision():
    return RateLimitDecision(
        allowed=False,
        remaining_attempts=0,
        reset_time=NOW + timedelta(minutes=30, milliseconds=1),
        blocked=True,
        limit=5,
    )


def test_headers_use_whole_seconds_and_round_up():
    headers = rate_limit_headers(blocked_decision(), NOW)

    assert headers["X-RateLimit-Limit"] == "5"
    assert headers["X-RateLimit-Remaining"] == "0"
    assert headers["X-RateLimit-Reset"] == str(math.ceil((NOW + timedelta(minutes=30, seconds=1)).timestamp()))
    assert headers["Retry-After"] == "1801"


def test_allowed_decision_has_no_retry_after():
    decision = RateLimitDecision(allowed=True, remaining_attempts=4, reset_time=None, blocked=False, limit=5)

    headers = rate_limit_headers(decision, NOW, window=timedelta(minutes=15))

    assert "Retry-After" not in headers
    assert headers["X-RateLimit-Reset"] == str(math.ceil((NOW + timedelta(minutes=15)).timestamp()))


def test_rate_limited_response_body():
    response = rate_limited_response(blocked_decision(), NOW)

    assert response.status_code == 429
    assert response.data == {
        "code": "rate_limited",
        "detail": "Too many requests. Please try again later.",
        "retry_after": 1801,
        "blocked": True,
    }
    assert response["Retry-After"] == "1801"


def test_identifier_prefers_payload_email_then_falls_back_to_ip():
    request = APIRequestFactory().post("/", REMOTE_ADDR="10.1.2.3")
    request.user = AnonymousUser()

    assert rate_limit_identifier(request, "email", email="ana@example.com") == ("ana@example.com", "email")
    assert rate_limit_identifier(request, "email") == ("10.1.2.3", "ip")
    assert rate_limit_identifier(request, "user_id") == ("10.1.2.3", "ip")


def test_identifier_uses_first_forwarded_address():
    request = APIRequestFactory().get("/", HTTP_X_FORWARDED_FOR="203.0.113.9, 10.0.0.1")
    request.user = AnonymousUser()

    assert rate_limit_identifier(request, "ip") == ("203.0.113.9", "ip")


@pytest.mark.django_db
def test_identifier_uses_authenticated_user_id(owner):
    request = APIRequestFactory().post("/")
    request.user = owner

    assert rate_limit_identifier(request, "user_id") == (str(owner.pk), "user_id")
    assert rate_limit_identifier(request, "email") == ("owner@example.com", "email")


def test_guard_charges_only_when_told(clock):
    policy = RateLimitPolicy("waitlist-claim", "ip", 2, 60_000, 60_000)
    limiter = RateLimiter(InMemoryCounterStore(), clock=clock, policy_lookup=lambda action: policy)
    request = APIRequestFactory().post("/", REMOTE_ADDR="10.9.9.9")
    request.user = AnonymousUser()

    guard = RateLimitGuard(request, "waitlist-claim", limiter=limiter)
    assert guard.check().remaining_attempts == 2
    assert guard.check().remaining_attempts == 2

    guard.charge()
    guard.charge()
    assert guard.check().allowed is False

    response = guard.apply_headers(Response({"ok": True}))
    assert response["X-RateLimit-Remaining"] == "0"
    assert not response.has_header("Retry-After")
    assert guard.denied_response().status_code == 429

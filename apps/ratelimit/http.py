"""HTTP contract shared by every rate-limited endpoint."""

from __future__ import annotations

import math
from typing import Optional

from django.utils import timezone  # type: ignore
from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.salons.access import rate_limit_identifier

from .limiter import RateLimitDecision, RateLimiter, get_rate_limiter

RATE_LIMITED_MESSAGE = "Too many requests. Please try again later."


def rate_limit_headers(decision: RateLimitDecision, now=None, *, window=None) -> dict[str, str]:
    """X-RateLimit-* headers, all times in whole seconds."""

    now = now or timezone.now()
    reset_epoch = decision.reset_epoch_seconds()
    if reset_epoch is None:
        reset_epoch = math.ceil((now + window).timestamp()) if window is not None else math.ceil(now.timestamp())

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining_attempts),
        "X-RateLimit-Reset": str(reset_epoch),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds(now))
    return headers


def rate_limited_response(decision: RateLimitDecision, now=None, *, message: str = RATE_LIMITED_MESSAGE) -> Response:
    now = now or timezone.now()
    body = {
        "code": "rate_limited",
        "detail": message,
        "retry_after": decision.retry_after_seconds(now),
        "blocked": decision.blocked,
    }
    return Response(body, status=status.HTTP_429_TOO_MANY_REQUESTS, headers=rate_limit_headers(decision, now))


class RateLimitGuard:
    """
    Per-request admission control.

        guard = RateLimitGuard(request, "booking", email=payload_email)
        if not guard.check().allowed:
            return guard.denied_response()
        ... do the work ...
        guard.charge()
        return guard.apply_headers(response)
    """

    def __init__(self, request, action_type: str, *, email: Optional[str] = None, limiter: Optional[RateLimiter] = None):
        self.limiter = limiter or get_rate_limiter()
        self.action_type = action_type
        self.policy = self.limiter.policy_for(action_type)
        self.identifier, self.identifier_type = rate_limit_identifier(
            request, self.policy.identifier_type, email=email
        )
        self.decision: Optional[RateLimitDecision] = None

    def check(self) -> RateLimitDecision:
        self.decision = self.limiter.check(self.identifier, self.action_type, self.identifier_type)
        return self.decision

    def charge(self) -> RateLimitDecision:
        self.decision = self.limiter.increment(self.identifier, self.action_type, self.identifier_type)
        return self.decision

    def denied_response(self) -> Response:
        if self.decision is None:
            self.check()
        return rate_limited_response(self.decision)

    def apply_headers(self, response: Response) -> Response:
        if self.decision is not None:
            for header, value in rate_limit_headers(self.decision, window=self.policy.window).items():
                if header != "Retry-After" or response.status_code == status.HTTP_429_TOO_MANY_REQUESTS:
                    response[header] = value
        return response

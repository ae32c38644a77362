"""Identity and salon-scoping lookups used by the API layer."""

from __future__ import annotations

from django.db.models import Q  # type: ignore

from .models import Salon

IDENTIFIER_EMAIL = "email"
IDENTIFIER_IP = "ip"
IDENTIFIER_USER_ID = "user_id"


def accessible_salons(user):
    """Salons the user owns or is a member of. Staff users see all salons."""

    if not user or not user.is_authenticated:
        return Salon.objects.none()
    if user.is_staff or user.is_superuser:
        return Salon.objects.all()
    return Salon.objects.filter(Q(owner=user) | Q(memberships__user=user)).distinct()


def user_has_salon_access(user, salon_id) -> bool:
    if salon_id is None:
        return False
    return accessible_salons(user).filter(pk=salon_id).exists()


def client_ip(request) -> str:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    return request.META.get("REMOTE_ADDR") or "unknown"


def rate_limit_identifier(request, identifier_type: str, *, email: str | None = None) -> tuple[str, str]:
    """
    Resolve the caller's opaque rate-limit identifier.

    Returns (identifier, identifier_type). Falls back to the client IP when
    the requested identity is not available on this request.
    """

    user = getattr(request, "user", None)
    if identifier_type == IDENTIFIER_USER_ID and user is not None and user.is_authenticated:
        return str(user.pk), IDENTIFIER_USER_ID
    if identifier_type == IDENTIFIER_EMAIL:
        if email:
            return email, IDENTIFIER_EMAIL
        if user is not None and user.is_authenticated and getattr(user, "email", ""):
            return user.email, IDENTIFIER_EMAIL
    return client_ip(request), IDENTIFIER_IP

"""Waitlist API routes: entries, offers, and the claim and leave endpoints."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import SimpleRouter  # type: ignore

from .views import ClaimOfferView, LeaveWaitlistView, WaitlistEntryViewSet, WaitlistOfferViewSet

router = SimpleRouter()
router.register(r"entries", WaitlistEntryViewSet, basename="waitlist-entry")
router.register(r"offers", WaitlistOfferViewSet, basename="waitlist-offer")

urlpatterns = [
    path("claim/", ClaimOfferView.as_view(), name="waitlist-claim"),
    path("leave/", LeaveWaitlistView.as_view(), name="waitlist-leave"),
    path("", include(router.urls)),
]

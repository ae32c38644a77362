"""API views for the waitlist domain."""

from __future__ import annotations

from django.shortcuts import get_object_or_404  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.ratelimit.http import RateLimitGuard
from apps.salons.access import accessible_salons, user_has_salon_access

from .coordinator import (
    OfferResponseStatus,
    WaitlistIntake,
    WaitlistValidationError,
    get_coordinator,
)
from .filters import WaitlistEntryFilter, WaitlistOfferFilter
from .models import WaitlistEntry, WaitlistOffer
from .serializers import (
    EntryCancelSerializer,
    LeaveWaitlistSerializer,
    OfferResponseSerializer,
    PriorityOverrideSerializer,
    PublicWaitlistEntrySerializer,
    WaitlistEntrySerializer,
    WaitlistIntakeSerializer,
    WaitlistLifecycleEventSerializer,
    WaitlistOfferSerializer,
)


def _validation_error(errors) -> Response:
    return Response({"code": "validation_error", "errors": errors}, status=status.HTTP_400_BAD_REQUEST)


class WaitlistEntryViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Waitlist entries of the salons the caller can access.

    Joining the waitlist is open to anonymous callers and rate limited per
    customer email (client IP when no email is given).
    """

    queryset = WaitlistEntry.objects.select_related("salon", "service", "employee").all()
    serializer_class = WaitlistEntrySerializer
    filterset_class = WaitlistEntryFilter

    def get_permissions(self):  # type: ignore
        if self.action == "create":
            return [permissions.AllowAny()]
        return [permissions.IsAuthenticated()]

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return WaitlistIntakeSerializer
        if self.action == "priority":
            return PriorityOverrideSerializer
        if self.action == "cancel":
            return EntryCancelSerializer
        return WaitlistEntrySerializer

    def get_queryset(self):  # type: ignore
        return super().get_queryset().filter(salon__in=accessible_salons(self.request.user))

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        if not serializer.is_valid():
            return _validation_error(serializer.errors)
        data = serializer.validated_data

        guard = RateLimitGuard(request, "public-waitlist-intake", email=data["customer_email"] or None)
        if not guard.check().allowed:
            return guard.denied_response()

        try:
            entry = get_coordinator().add_to_waitlist(WaitlistIntake(**data), actor=request.user)
        except WaitlistValidationError as exc:
            guard.charge()
            return guard.apply_headers(_validation_error(exc.errors))
        guard.charge()

        if user_has_salon_access(request.user, entry.salon_id):
            body = WaitlistEntrySerializer(entry).data
        else:
            body = PublicWaitlistEntrySerializer(entry).data
        body["cancel_token"] = entry.cancel_token
        return guard.apply_headers(Response(body, status=status.HTTP_201_CREATED))

    @action(detail=True, methods=["post"])
    def priority(self, request, pk=None):  # type: ignore
        entry = get_object_or_404(self.get_queryset(), pk=pk)

        guard = RateLimitGuard(request, "waitlist-priority-override")
        if not guard.check().allowed:
            return guard.denied_response()

        serializer = self.get_serializer(data=request.data)
        if not serializer.is_valid():
            return guard.apply_headers(_validation_error(serializer.errors))

        try:
            entry = get_coordinator().set_priority_override(
                entry.pk,
                serializer.validated_data["score"],
                serializer.validated_data["reason"],
                actor=request.user,
            )
        except WaitlistValidationError as exc:
            guard.charge()
            return guard.apply_headers(_validation_error(exc.errors))
        guard.charge()

        return guard.apply_headers(Response(WaitlistEntrySerializer(entry).data))

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        entry = get_object_or_404(self.get_queryset(), pk=pk)

        guard = RateLimitGuard(request, "waitlist-cancellation")
        if not guard.check().allowed:
            return guard.denied_response()

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cancelled = get_coordinator().cancel_entry(
            entry.pk, actor=request.user, reason=serializer.validated_data["reason"]
        )
        guard.charge()

        if not cancelled:
            response = Response(
                {"code": "not_cancellable", "detail": "Waitlist entry is no longer active."},
                status=status.HTTP_409_CONFLICT,
            )
        else:
            entry.refresh_from_db()
            response = Response(WaitlistEntrySerializer(entry).data)
        return guard.apply_headers(response)

    @action(detail=True, methods=["get"])
    def events(self, request, pk=None):  # type: ignore
        entry = get_object_or_404(self.get_queryset(), pk=pk)
        return Response(WaitlistLifecycleEventSerializer(entry.lifecycle_events.all(), many=True).data)


class WaitlistOfferViewSet(viewsets.ReadOnlyModelViewSet):
    """Offers of the salons the caller can access."""

    queryset = WaitlistOffer.objects.select_related("entry", "employee", "service", "booking").all()
    serializer_class = WaitlistOfferSerializer
    filterset_class = WaitlistOfferFilter
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):  # type: ignore
        return super().get_queryset().filter(salon__in=accessible_salons(self.request.user))


class ClaimOfferView(APIView):
    """
    Accept or decline a waitlist offer with its claim token.

    GET serves the links sent to the customer (?action=accept&token=...),
    POST takes {"token": ..., "decision": "accept" | "decline"}.
    """

    permission_classes = [permissions.AllowAny]
    authentication_classes: list = []

    ERROR_RESPONSES = {
        OfferResponseStatus.NOT_FOUND: ("offer_not_found", status.HTTP_404_NOT_FOUND),
        OfferResponseStatus.EXPIRED: ("offer_expired", status.HTTP_409_CONFLICT),
        OfferResponseStatus.ALREADY_RESPONDED: ("already_responded", status.HTTP_409_CONFLICT),
        OfferResponseStatus.SLOT_UNAVAILABLE: ("slot_unavailable", status.HTTP_409_CONFLICT),
    }

    def get(self, request):  # type: ignore
        data = {"token": request.query_params.get("token", ""), "decision": request.query_params.get("action", "")}
        return self._respond(request, data)

    def post(self, request):  # type: ignore
        return self._respond(request, request.data)

    def _respond(self, request, data):
        serializer = OfferResponseSerializer(data=data)
        if not serializer.is_valid():
            return _validation_error(serializer.errors)

        guard = RateLimitGuard(request, "waitlist-claim")
        if not guard.check().allowed:
            return guard.denied_response()

        result = get_coordinator().respond(
            serializer.validated_data["token"], serializer.validated_data["decision"]
        )
        guard.charge()

        if result.status in self.ERROR_RESPONSES:
            code, http_status = self.ERROR_RESPONSES[result.status]
            body = {"code": code, "detail": result.message}
            if result.offer is not None:
                body["status"] = result.offer.status
            return guard.apply_headers(Response(body, status=http_status))

        body = {"status": result.status.value, "detail": result.message, "offer_id": result.offer.pk}
        if result.booking is not None:
            body["booking_id"] = result.booking.pk
        return guard.apply_headers(Response(body, status=status.HTTP_200_OK))


class LeaveWaitlistView(APIView):
    """
    Customer leaves the waitlist with the cancel_token returned at intake.

    POST {"token": ...}; a pending offer of the entry is cancelled and the
    slot moves on to the next customer.
    """

    permission_classes = [permissions.AllowAny]
    authentication_classes: list = []

    def post(self, request):  # type: ignore
        serializer = LeaveWaitlistSerializer(data=request.data)
        if not serializer.is_valid():
            return _validation_error(serializer.errors)

        guard = RateLimitGuard(request, "public-waitlist-cancellation")
        if not guard.check().allowed:
            return guard.denied_response()

        entry, cancelled = get_coordinator().cancel_entry_by_token(serializer.validated_data["token"])
        guard.charge()

        if entry is None:
            response = Response(
                {"code": "entry_not_found", "detail": "This waitlist link is not valid."},
                status=status.HTTP_404_NOT_FOUND,
            )
        elif not cancelled:
            response = Response(
                {"code": "not_cancellable", "detail": "Waitlist entry is no longer active.", "status": entry.status},
                status=status.HTTP_409_CONFLICT,
            )
        else:
            response = Response({"status": entry.status, "entry_id": entry.pk})
        return guard.apply_headers(response)

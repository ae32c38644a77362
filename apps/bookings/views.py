"""API views for the booking domain."""

from __future__ import annotations

from django.shortcuts import get_object_or_404  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.ratelimit.http import RateLimitGuard, rate_limit_headers, rate_limited_response
from apps.salons.access import accessible_salons, rate_limit_identifier, user_has_salon_access

from .application.command_handlers import (
    AdmissionStatus,
    AdmitBookingCommand,
    AdmitBookingHandler,
    CancelBookingCommand,
    CancelBookingHandler,
)
from .models import Booking
from .serializers import BookingCancelSerializer, BookingCreateSerializer, BookingSerializer

IDEMPOTENCY_HEADER = "HTTP_IDEMPOTENCY_KEY"


class BookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Bookings of the salons the caller can access.

    Creating a booking is also open to anonymous callers (the public booking
    page); those are rate limited per customer email and cannot be walk-ins.
    """

    queryset = Booking.objects.select_related("salon", "employee", "service").all()
    serializer_class = BookingSerializer
    filterset_fields = ["salon", "employee", "status", "source"]

    def get_permissions(self):  # type: ignore
        if self.action == "create":
            return [permissions.AllowAny()]
        return [permissions.IsAuthenticated()]

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return BookingCreateSerializer
        if self.action == "cancel":
            return BookingCancelSerializer
        return BookingSerializer

    def get_queryset(self):  # type: ignore
        return super().get_queryset().filter(salon__in=accessible_salons(self.request.user))

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"code": "validation_error", "errors": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        data = serializer.validated_data

        is_staff_request = user_has_salon_access(request.user, data["salon_id"])
        if data["is_walk_in"] and not is_staff_request:
            return Response(
                {"code": "validation_error", "errors": {"is_walk_in": ["Walk-ins can only be added by salon staff."]}},
                status=status.HTTP_400_BAD_REQUEST,
            )

        handler = AdmitBookingHandler()
        policy = handler.rate_limiter.policy_for("booking")
        identifier, identifier_type = rate_limit_identifier(
            request, policy.identifier_type, email=data.get("customer_email") or None
        )

        result = handler.handle(AdmitBookingCommand(
            salon_id=data["salon_id"],
            employee_id=data["employee_id"],
            service_id=data["service_id"],
            start_time=data["start_time"],
            customer_name=data["customer_name"],
            customer_email=data["customer_email"],
            customer_phone=data["customer_phone"],
            is_walk_in=data["is_walk_in"],
            notes=data["notes"],
            idempotency_key=data.get("idempotency_key") or request.META.get(IDEMPOTENCY_HEADER) or None,
            rate_limit_identifier=identifier,
            rate_limit_identifier_type=identifier_type,
            source=Booking.Source.DASHBOARD if is_staff_request else Booking.Source.PUBLIC,
            created_by_id=request.user.pk if is_staff_request else None,
        ))

        if result.status == AdmissionStatus.INVALID:
            return Response(
                {"code": "validation_error", "errors": result.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        if result.status == AdmissionStatus.RATE_LIMITED:
            return rate_limited_response(result.rate_limit, message=result.message)

        if result.status == AdmissionStatus.CONFLICT:
            response = Response(
                {"code": "slot_conflict", "detail": result.message},
                status=status.HTTP_409_CONFLICT,
            )
        else:
            response = Response(
                BookingSerializer(result.booking).data,
                status=status.HTTP_200_OK if result.replayed else status.HTTP_201_CREATED,
            )

        if result.rate_limit is not None:
            for header, value in rate_limit_headers(result.rate_limit, window=policy.window).items():
                if header != "Retry-After":
                    response[header] = value
        return response

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking = get_object_or_404(self.get_queryset(), pk=pk)

        guard = RateLimitGuard(request, "booking-cancellation")
        if not guard.check().allowed:
            return guard.denied_response()

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cancelled = CancelBookingHandler().handle(
            CancelBookingCommand(booking_id=booking.pk, reason=serializer.validated_data["reason"])
        )
        guard.charge()

        if not cancelled:
            response = Response(
                {"code": "not_cancellable", "detail": "Booking cannot be cancelled in its current status."},
                status=status.HTTP_409_CONFLICT,
            )
        else:
            booking.refresh_from_db()
            response = Response(BookingSerializer(booking).data)
        return guard.apply_headers(response)

"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Booking


class BookingCreateSerializer(serializers.Serializer):
    """Booking request as submitted by the dashboard or the public booking page."""

    salon_id = serializers.IntegerField()
    employee_id = serializers.IntegerField()
    service_id = serializers.IntegerField()
    start_time = serializers.DateTimeField()
    customer_name = serializers.CharField(max_length=255)
    customer_email = serializers.EmailField(required=False, allow_blank=True, default="")
    customer_phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    is_walk_in = serializers.BooleanField(required=False, default=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    idempotency_key = serializers.CharField(max_length=128, required=False, allow_blank=True, allow_null=True)

    def validate_customer_name(self, value: str) -> str:
        value = value.strip()
        if not value:
            raise serializers.ValidationError("This field may not be blank.")
        return value


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)


class BookingSerializer(serializers.ModelSerializer):
    """Read representation of a booking."""

    salon_id = serializers.ReadOnlyField(source="salon.id")
    employee_id = serializers.ReadOnlyField(source="employee.id")
    service_id = serializers.ReadOnlyField(source="service.id")
    service_name = serializers.ReadOnlyField(source="service.name")
    employee_name = serializers.ReadOnlyField(source="employee.full_name")

    class Meta:
        model = Booking
        fields = [
            "id",
            "salon_id",
            "employee_id",
            "employee_name",
            "service_id",
            "service_name",
            "customer_name",
            "customer_email",
            "customer_phone",
            "start_time",
            "end_time",
            "status",
            "is_walk_in",
            "source",
            "notes",
            "cancelled_at",
            "cancellation_reason",
            "created_at",
        ]
        read_only_fields = fields

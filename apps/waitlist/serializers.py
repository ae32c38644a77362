"""Serializers for the waitlist domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .coordinator import Decision
from .models import WaitlistEntry, WaitlistLifecycleEvent, WaitlistOffer


class WaitlistIntakeSerializer(serializers.Serializer):
    """Waitlist request from the public booking page or the dashboard."""

    salon_id = serializers.IntegerField()
    service_id = serializers.IntegerField()
    employee_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    customer_name = serializers.CharField(max_length=255)
    customer_email = serializers.EmailField(required=False, allow_blank=True, default="")
    customer_phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    preferred_date = serializers.DateField()
    preferred_time_start = serializers.TimeField(required=False, allow_null=True, default=None, input_formats=["%H:%M", "%H:%M:%S"])
    preferred_time_end = serializers.TimeField(required=False, allow_null=True, default=None, input_formats=["%H:%M", "%H:%M:%S"])


class WaitlistEntrySerializer(serializers.ModelSerializer):
    salon_id = serializers.ReadOnlyField(source="salon.id")
    service_id = serializers.ReadOnlyField(source="service.id")
    employee_id = serializers.ReadOnlyField(source="employee.id", default=None)

    class Meta:
        model = WaitlistEntry
        fields = [
            "id",
            "salon_id",
            "service_id",
            "employee_id",
            "customer_name",
            "customer_email",
            "customer_phone",
            "preferred_date",
            "preferred_time_start",
            "preferred_time_end",
            "status",
            "priority_override_score",
            "priority_override_reason",
            "status_changed_at",
            "created_at",
        ]
        read_only_fields = fields


class PublicWaitlistEntrySerializer(serializers.ModelSerializer):
    """What an anonymous caller gets back after joining the waitlist."""

    class Meta:
        model = WaitlistEntry
        fields = ["id", "status", "preferred_date", "preferred_time_start", "preferred_time_end", "created_at"]
        read_only_fields = fields


class WaitlistOfferSerializer(serializers.ModelSerializer):
    entry_id = serializers.ReadOnlyField(source="entry.id")
    employee_id = serializers.ReadOnlyField(source="employee.id")
    service_id = serializers.ReadOnlyField(source="service.id")
    booking_id = serializers.ReadOnlyField(source="booking.id", default=None)
    responded_at = serializers.DateTimeField(read_only=True)

    class Meta:
        model = WaitlistOffer
        fields = [
            "id",
            "entry_id",
            "employee_id",
            "service_id",
            "slot_date",
            "slot_start",
            "slot_end",
            "status",
            "attempt_no",
            "token_expires_at",
            "reminder_sent_at",
            "responded_at",
            "booking_id",
            "last_error",
            "created_at",
        ]
        read_only_fields = fields


class WaitlistLifecycleEventSerializer(serializers.ModelSerializer):
    actor_id = serializers.ReadOnlyField(source="actor.id", default=None)

    class Meta:
        model = WaitlistLifecycleEvent
        fields = ["id", "from_status", "to_status", "reason", "metadata", "actor_id", "created_at"]
        read_only_fields = fields


class PriorityOverrideSerializer(serializers.Serializer):
    score = serializers.IntegerField(allow_null=True)
    reason = serializers.CharField(max_length=255)


class EntryCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)


class LeaveWaitlistSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=128)


class OfferResponseSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=128)
    decision = serializers.ChoiceField(choices=[choice.value for choice in Decision])

"""Integration tests for booking API endpoints."""

from __future__ import annotations

from datetime import timedelta

from django.contrib.auth import get_user_model
from django.test import override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking
from apps.salons.models import Employee, Salon, Service

User = get_user_model()


class BookingAPITests(APITestCase):
    """Covers admission, conflicts, rate limiting and cancellation of bookings."""

    def setUp(self) -> None:
        self.owner = User.objects.create_user(
            username="owner",
            email="owner@example.com",
            password="OwnerPass123",
        )
        self.salon = Salon.objects.create(name="Studio Nord", slug="studio-nord", owner=self.owner)
        self.service = Service.objects.create(salon=self.salon, name="Haircut", duration_minutes=30)
        self.employee = Employee.objects.create(salon=self.salon, full_name="Ida Berg")
        self.start = (timezone.now() + timedelta(days=2)).replace(hour=10, minute=0, second=0, microsecond=0)
        self.list_url = reverse("booking-list")

    def _payload(self, start, email: str = "ana@example.com", **extra) -> dict:
        payload = {
            "salon_id": self.salon.id,
            "employee_id": self.employee.id,
            "service_id": self.service.id,
            "start_time": start.isoformat(),
            "customer_name": "Ana Lind",
            "customer_email": email,
        }
        payload.update(extra)
        return payload

    def test_public_booking_is_created(self) -> None:
        response = self.client.post(self.list_url, self._payload(self.start), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        booking = Booking.objects.get()
        self.assertEqual(booking.source, Booking.Source.PUBLIC)
        self.assertEqual(booking.end_time, self.start + timedelta(minutes=30))
        self.assertEqual(response["X-RateLimit-Limit"], "5")
        self.assertEqual(response["X-RateLimit-Remaining"], "4")
        self.assertFalse(response.has_header("Retry-After"))

    def test_overlapping_booking_is_rejected_with_conflict(self) -> None:
        first = self.client.post(self.list_url, self._payload(self.start), format="json")
        self.assertEqual(first.status_code, status.HTTP_201_CREATED, first.data)

        conflict = self.client.post(
            self.list_url,
            self._payload(self.start + timedelta(minutes=29), email="bo@example.com"),
            format="json",
        )

        self.assertEqual(conflict.status_code, status.HTTP_409_CONFLICT, conflict.data)
        self.assertEqual(conflict.data["code"], "slot_conflict")
        self.assertEqual(Booking.objects.count(), 1)

    def test_adjacent_booking_is_accepted(self) -> None:
        self.client.post(self.list_url, self._payload(self.start), format="json")

        response = self.client.post(
            self.list_url, self._payload(self.start + timedelta(minutes=30)), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

    def test_invalid_payload_returns_validation_errors(self) -> None:
        response = self.client.post(
            self.list_url, self._payload(self.start, customer_name=""), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "validation_error")
        self.assertIn("customer_name", response.data["errors"])

    def test_anonymous_caller_cannot_create_walk_in(self) -> None:
        response = self.client.post(
            self.list_url, self._payload(self.start, is_walk_in=True), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("is_walk_in", response.data["errors"])

    def test_staff_booking_is_marked_as_dashboard(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.post(
            self.list_url, self._payload(self.start, is_walk_in=True), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        booking = Booking.objects.get()
        self.assertEqual(booking.source, Booking.Source.DASHBOARD)
        self.assertEqual(booking.created_by, self.owner)

    @override_settings(RATE_LIMIT_POLICIES={"booking": {"max_attempts": 2}})
    def test_rate_limited_after_attempts_are_spent(self) -> None:
        for offset in (0, 60):
            response = self.client.post(
                self.list_url, self._payload(self.start + timedelta(minutes=offset)), format="json"
            )
            self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

        response = self.client.post(
            self.list_url, self._payload(self.start + timedelta(minutes=120)), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response.data["code"], "rate_limited")
        self.assertFalse(response.data["blocked"])
        self.assertGreater(int(response["Retry-After"]), 0)
        self.assertEqual(response["X-RateLimit-Remaining"], "0")
        self.assertEqual(Booking.objects.count(), 2)

        other = self.client.post(
            self.list_url,
            self._payload(self.start + timedelta(minutes=120), email="bo@example.com"),
            format="json",
        )
        self.assertEqual(other.status_code, status.HTTP_201_CREATED, other.data)

    def test_idempotency_key_header_replays_booking(self) -> None:
        first = self.client.post(
            self.list_url, self._payload(self.start), format="json", HTTP_IDEMPOTENCY_KEY="req-1"
        )
        replay = self.client.post(
            self.list_url, self._payload(self.start), format="json", HTTP_IDEMPOTENCY_KEY="req-1"
        )

        self.assertEqual(first.status_code, status.HTTP_201_CREATED, first.data)
        self.assertEqual(replay.status_code, status.HTTP_200_OK, replay.data)
        self.assertEqual(replay.data["id"], first.data["id"])
        self.assertEqual(Booking.objects.count(), 1)

    def test_owner_lists_and_cancels_booking(self) -> None:
        created = self.client.post(self.list_url, self._payload(self.start), format="json")
        self.client.force_authenticate(self.owner)

        listing = self.client.get(self.list_url)
        self.assertEqual(listing.status_code, status.HTTP_200_OK)
        self.assertEqual([item["id"] for item in listing.data], [created.data["id"]])

        cancel_url = reverse("booking-cancel", args=[created.data["id"]])
        response = self.client.post(cancel_url, {"reason": "Customer called"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], Booking.Status.CANCELLED)

        again = self.client.post(cancel_url, {}, format="json")
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(again.data["code"], "not_cancellable")

    def test_cancelled_slot_can_be_booked_again(self) -> None:
        created = self.client.post(self.list_url, self._payload(self.start), format="json")
        self.client.force_authenticate(self.owner)
        self.client.post(reverse("booking-cancel", args=[created.data["id"]]), {}, format="json")
        self.client.force_authenticate(None)

        response = self.client.post(
            self.list_url, self._payload(self.start, email="bo@example.com"), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

    def test_outsider_sees_no_bookings(self) -> None:
        self.client.post(self.list_url, self._payload(self.start), format="json")
        outsider = User.objects.create_user(username="outsider", password="OutsiderPass123")
        self.client.force_authenticate(outsider)

        response = self.client.get(self.list_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, [])

"""Shared pytest fixtures: a salon with staff, a controllable clock and a recording notifier."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from apps.waitlist.notifications import DeliveryResult, OfferNotifier


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class RecordingNotifier(OfferNotifier):
    """Keeps the plaintext tokens it was asked to deliver."""

    def __init__(self):
        self.offers: list[tuple[int, int, str]] = []
        self.reminders: list[tuple[int, int, str]] = []
        self.fail_entry_ids: set[int] = set()
        self.fail_reminders = False

    def send_offer_notification(self, offer, entry, token: str) -> DeliveryResult:
        if entry.pk in self.fail_entry_ids:
            return DeliveryResult(sent=False, error="SMS gateway down")
        self.offers.append((offer.pk, entry.pk, token))
        return DeliveryResult(sent=True)

    def send_reminder(self, offer, entry, token: str) -> DeliveryResult:
        if self.fail_reminders:
            return DeliveryResult(sent=False, error="Reminder delivery failed")
        self.reminders.append((offer.pk, entry.pk, token))
        return DeliveryResult(sent=True)

    def token_for(self, offer_id: int) -> str:
        return next(token for pk, _, token in reversed(self.offers) if pk == offer_id)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2030, 3, 4, 8, 0, tzinfo=dt_timezone.utc))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def owner(django_user_model):
    return django_user_model.objects.create_user(username="owner", email="owner@example.com", password="OwnerPass123")


@pytest.fixture
def salon(owner):
    from apps.salons.models import Salon

    return Salon.objects.create(name="Studio Nord", slug="studio-nord", owner=owner)


@pytest.fixture
def service(salon):
    from apps.salons.models import Service

    return Service.objects.create(salon=salon, name="Haircut", duration_minutes=30)


@pytest.fixture
def employee(salon):
    from apps.salons.models import Employee

    return Employee.objects.create(salon=salon, full_name="Ida Berg")


@pytest.fixture
def other_employee(salon):
    from apps.salons.models import Employee

    return Employee.objects.create(salon=salon, full_name="Ola Dahl")

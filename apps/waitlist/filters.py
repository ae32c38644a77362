"""django-filter filtersets for waitlist listings."""

import django_filters  # type: ignore

from .models import WaitlistEntry, WaitlistOffer


class WaitlistEntryFilter(django_filters.FilterSet):
    preferred_date_from = django_filters.DateFilter(field_name="preferred_date", lookup_expr="gte")
    preferred_date_to = django_filters.DateFilter(field_name="preferred_date", lookup_expr="lte")

    class Meta:
        model = WaitlistEntry
        fields = ["salon", "service", "employee", "status", "preferred_date"]


class WaitlistOfferFilter(django_filters.FilterSet):
    slot_from = django_filters.IsoDateTimeFilter(field_name="slot_start", lookup_expr="gte")
    slot_to = django_filters.IsoDateTimeFilter(field_name="slot_start", lookup_expr="lt")

    class Meta:
        model = WaitlistOffer
        fields = ["salon", "entry", "employee", "status"]

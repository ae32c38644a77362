"""Tenant models: salons, staff and the services they offer."""

from __future__ import annotations

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Salon(models.Model):
    """A tenant of the platform."""

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=80, unique=True)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="owned_salons",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class SalonMembership(models.Model):
    """Grants a user access to a salon's dashboard."""

    class Role(models.TextChoices):
        OWNER = "owner", _("Owner")
        MANAGER = "manager", _("Manager")
        STAFF = "staff", _("Staff")

    salon = models.ForeignKey(Salon, on_delete=models.CASCADE, related_name="memberships")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="salon_memberships",
    )
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.STAFF)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["salon", "user"], name="salon_membership_unique"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} @ {self.salon_id} ({self.role})"


class Service(models.Model):
    salon = models.ForeignKey(Salon, on_delete=models.CASCADE, related_name="services")
    name = models.CharField(max_length=255)
    duration_minutes = models.PositiveIntegerField(default=30)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.duration_minutes} min)"


class Employee(models.Model):
    salon = models.ForeignKey(Salon, on_delete=models.CASCADE, related_name="employees")
    full_name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True)
    services = models.ManyToManyField(
        Service,
        blank=True,
        related_name="employees",
        help_text=_("Services this employee performs. Empty means all services."),
    )

    class Meta:
        ordering = ["full_name"]

    def __str__(self) -> str:
        return self.full_name

    def can_perform(self, service: Service) -> bool:
        if service.salon_id != self.salon_id:
            return False
        if not self.services.exists():
            return True
        return self.services.filter(pk=service.pk).exists()

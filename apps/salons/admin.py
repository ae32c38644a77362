"""Admin registration for salons."""

from __future__ import annotations

from django.contrib import admin

from .models import Employee, Salon, SalonMembership, Service


class SalonMembershipInline(admin.TabularInline):
    model = SalonMembership
    extra = 0


@admin.register(Salon)
class SalonAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "owner", "is_active", "created_at")
    search_fields = ("name", "slug", "owner__email")
    inlines = [SalonMembershipInline]


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ("name", "salon", "duration_minutes", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "salon__name")


@admin.register(Employee)
class EmployeeAdmin(admin.ModelAdmin):
    list_display = ("full_name", "salon", "is_active")
    list_filter = ("is_active",)
    search_fields = ("full_name", "salon__name")
    filter_horizontal = ("services",)

"""Admin registrations for properties domain."""

from __future__ import annotations

from django.contrib import admin

from .models import CalendarDay, Property


class CalendarDayInline(admin.TabularInline):
    model = CalendarDay
    extra = 0
    fields = ("date", "is_available", "price_adjustment", "minimum_stay")


@admin.register(Property)
class PropertyAdmin(admin.ModelAdmin):
    list_display = (
        "title",
        "owner",
        "status",
        "base_price",
        "currency",
        "max_guests",
        "min_nights",
        "instant_booking",
    )
    list_filter = ("status", "instant_booking", "currency")
    search_fields = ("title", "owner__email", "owner__username")
    inlines = (CalendarDayInline,)
    readonly_fields = ("created_at", "updated_at")


@admin.register(CalendarDay)
class CalendarDayAdmin(admin.ModelAdmin):
    list_display = ("property", "date", "is_available", "price_adjustment", "minimum_stay")
    list_filter = ("is_available",)
    search_fields = ("property__title",)
    date_hierarchy = "date"

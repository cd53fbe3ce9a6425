"""Admin registration for bookings.

Bookings change state only through the service layer, so the admin is
read-only.
"""

from __future__ import annotations

from django.contrib import admin

from .models import Booking, BookingPriceSnapshot


class BookingPriceSnapshotInline(admin.TabularInline):
    model = BookingPriceSnapshot
    extra = 0
    can_delete = False
    fields = ("created_at", "check_in", "check_out", "guests_count", "nights", "total_price", "currency")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):  # type: ignore
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "booking_code",
        "property",
        "guest",
        "status",
        "check_in",
        "check_out",
        "total_price",
        "created_at",
    )
    list_filter = ("status", "check_in", "check_out")
    search_fields = ("booking_code", "property__title", "guest__email")
    inlines = (BookingPriceSnapshotInline,)

    def get_readonly_fields(self, request, obj=None):  # type: ignore
        return [f.name for f in self.model._meta.fields] + ["total_price"]

    def has_add_permission(self, request):  # type: ignore
        return False

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False

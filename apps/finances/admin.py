"""Admin registration for payments."""

from __future__ import annotations

from django.contrib import admin

from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("booking", "status", "provider", "amount", "refunded_amount", "currency", "captured_at")
    list_filter = ("status", "provider")
    search_fields = ("booking__booking_code", "intent_ref")
    readonly_fields = ("intent_ref", "captured_at", "refunded_at", "created_at", "updated_at")

"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.finances.models import Payment
from apps.properties.models import Property

from .models import Booking, BookingPriceSnapshot


class BookingCreateSerializer(serializers.Serializer):
    """Создание брони гостем."""

    property = serializers.PrimaryKeyRelatedField(queryset=Property.objects.all())
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    guests_count = serializers.IntegerField(min_value=1, default=1)

    def validate(self, attrs):  # type: ignore
        if attrs["check_in"] >= attrs["check_out"]:
            raise serializers.ValidationError({"check_out": "Дата выезда должна быть позже даты заезда."})
        return attrs


class BookingUpdateSerializer(serializers.Serializer):
    check_in = serializers.DateField(required=False)
    check_out = serializers.DateField(required=False)
    guests_count = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):  # type: ignore
        if not attrs:
            raise serializers.ValidationError("Nothing to update.")
        return attrs


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")


class PriceSnapshotSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingPriceSnapshot
        fields = [
            "id",
            "check_in",
            "check_out",
            "guests_count",
            "currency",
            "nightly_rates",
            "nights",
            "base_total",
            "cleaning_fee",
            "service_fee",
            "total_price",
            "created_at",
        ]
        read_only_fields = fields


class PaymentSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ["status", "provider", "amount", "refunded_amount", "currency", "captured_at"]
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    """Детальный сериализатор бронирования."""

    guest_id = serializers.ReadOnlyField(source="guest.id")
    property_id = serializers.ReadOnlyField(source="property.id")
    property_title = serializers.ReadOnlyField(source="property.title")
    total_price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    nights = serializers.IntegerField(read_only=True)
    price = PriceSnapshotSerializer(source="price_snapshot", read_only=True)
    payment = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "booking_code",
            "guest_id",
            "property_id",
            "property_title",
            "check_in",
            "check_out",
            "nights",
            "guests_count",
            "status",
            "total_price",
            "currency",
            "price",
            "payment",
            "accepted_at",
            "expires_at",
            "refund_amount",
            "cancelled_at",
            "cancellation_reason",
            "status_changed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_payment(self, obj: Booking):  # type: ignore
        payment = Payment.objects.filter(booking=obj).first()
        if payment is None:
            return None
        return PaymentSummarySerializer(payment).data

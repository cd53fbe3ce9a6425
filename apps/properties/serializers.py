"""Serializers for the properties domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import CalendarDay, Property


class PropertySerializer(serializers.ModelSerializer):
    owner_id = serializers.ReadOnlyField(source="owner.id")

    class Meta:
        model = Property
        fields = [
            "id",
            "owner_id",
            "title",
            "status",
            "base_price",
            "cleaning_fee",
            "service_fee",
            "currency",
            "max_guests",
            "min_nights",
            "instant_booking",
        ]
        read_only_fields = fields


class AvailabilityQuerySerializer(serializers.Serializer):
    start = serializers.DateField()
    end = serializers.DateField()

    def validate(self, attrs):  # type: ignore
        if attrs["end"] <= attrs["start"]:
            raise serializers.ValidationError({"end": "Дата окончания должна быть позже даты начала."})
        return attrs


class CalendarOverrideSerializer(serializers.Serializer):
    date = serializers.DateField()
    is_available = serializers.BooleanField(default=True)
    price_adjustment = serializers.DecimalField(
        max_digits=10, decimal_places=2, required=False, allow_null=True, default=None
    )
    minimum_stay = serializers.IntegerField(min_value=1, required=False, allow_null=True, default=None)


class CalendarDaySerializer(serializers.ModelSerializer):
    class Meta:
        model = CalendarDay
        fields = ["date", "is_available", "price_adjustment", "minimum_stay", "updated_at"]
        read_only_fields = fields

"""Property API views: catalogue reads, availability and calendar overrides."""

from __future__ import annotations

from rest_framework import permissions, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from .models import Property
from .serializers import (
    AvailabilityQuerySerializer,
    CalendarDaySerializer,
    CalendarOverrideSerializer,
    PropertySerializer,
)
from .services import CalendarOverride, apply_overrides, check_availability


class IsPropertyOwnerOrAdmin(permissions.BasePermission):
    """Позволяет управлять календарём объекта его владельцу и персоналу."""

    def has_object_permission(self, request, view, obj: Property):  # type: ignore
        if request.method in permissions.SAFE_METHODS:
            return True
        user = request.user
        if not user.is_authenticated:
            return False
        if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
            return True
        return obj.owner_id == user.id


class PropertyViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only catalogue with availability and calendar endpoints."""

    queryset = Property.objects.select_related("owner")
    serializer_class = PropertySerializer
    permission_classes = [permissions.IsAuthenticatedOrReadOnly, IsPropertyOwnerOrAdmin]

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        user = self.request.user
        if self.action == "calendar":
            return qs
        if user.is_authenticated and (getattr(user, "is_staff", False) or getattr(user, "is_superuser", False)):
            return qs
        return qs.filter(status=Property.Status.ACTIVE)

    @action(detail=True, methods=["get"], permission_classes=[permissions.AllowAny])
    def availability(self, request, pk=None):  # type: ignore
        property_obj: Property = self.get_object()  # type: ignore
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        window = check_availability(property_obj.pk, query.validated_data["start"], query.validated_data["end"])
        return Response(window.to_dict())

    @action(detail=True, methods=["put"])
    def calendar(self, request, pk=None):  # type: ignore
        property_obj: Property = self.get_object()  # type: ignore
        serializer = CalendarOverrideSerializer(data=request.data, many=True)
        serializer.is_valid(raise_exception=True)
        overrides = [CalendarOverride(**item) for item in serializer.validated_data]
        days = apply_overrides(property_obj.pk, overrides)
        return Response(CalendarDaySerializer(days, many=True).data)

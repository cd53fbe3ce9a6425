"""API views for the booking domain."""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from . import services
from .exceptions import BookingPermissionDenied
from .filters import BookingFilterSet
from .models import Booking
from .serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    BookingUpdateSerializer,
    PriceSnapshotSerializer,
    ReasonSerializer,
)


def _is_admin(user) -> bool:  # type: ignore
    return getattr(user, "is_staff", False) or getattr(user, "is_superuser", False)


class IsBookingStakeholder(permissions.BasePermission):
    """Гости, владельцы объектов и администраторы имеют доступ к бронированию."""

    def has_object_permission(self, request, view, obj: Booking):  # type: ignore
        user = request.user
        if not user.is_authenticated:
            return False
        if _is_admin(user):
            return True
        return user.id in (obj.guest_id, obj.property.owner_id)


class BookingViewSet(
    mixins.CreateModelMixin,
    mixins.RetrieveModelMixin,
    mixins.ListModelMixin,
    viewsets.GenericViewSet,
):
    """Viewset для создания и управления бронированиями.

    Записи идут только через сервисный слой; удаление не поддерживается.
    """

    queryset = Booking.objects.select_related("property", "property__owner", "guest", "price_snapshot")
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated, IsBookingStakeholder]
    filter_backends = [DjangoFilterBackend]
    filterset_class = BookingFilterSet

    def get_queryset(self):  # type: ignore
        user = self.request.user
        if _is_admin(user):
            return super().get_queryset()
        return services.list_bookings_for_user(user).select_related("property__owner", "guest")

    def _respond(self, booking: Booking, http_status=status.HTTP_200_OK, **extra) -> Response:  # type: ignore
        booking = services.get_booking(booking.pk)
        data = dict(BookingSerializer(booking, context=self.get_serializer_context()).data)
        data.update(extra)
        return Response(data, status=http_status)

    def _require_guest_or_admin(self, booking: Booking) -> None:
        user = self.request.user
        if not (_is_admin(user) or booking.guest_id == user.id):
            raise BookingPermissionDenied("Only the guest can perform this action.")

    def _require_host_or_admin(self, booking: Booking) -> None:
        user = self.request.user
        if not (_is_admin(user) or booking.property.owner_id == user.id):
            raise BookingPermissionDenied("Only the host can perform this action.")

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = services.create_booking(
            data["property"].pk,
            request.user,
            data["check_in"],
            data["check_out"],
            data["guests_count"],
        )
        return self._respond(result.booking, status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        self._require_guest_or_admin(booking)
        serializer = BookingUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.update_booking(booking.pk, **serializer.validated_data)
        return self._respond(result.booking, price_difference=str(result.price_difference))

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.cancel_booking(booking.pk, request.user, serializer.validated_data["reason"])
        return self._respond(
            result.booking,
            policy_refund_amount=str(result.outcome.refund_amount),
            days_before_check_in=result.outcome.days_before_check_in,
        )

    @action(detail=True, methods=["post"])
    def confirm_payment(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        self._require_guest_or_admin(booking)
        return self._respond(services.confirm_payment(booking.pk))

    @action(detail=True, methods=["post"])
    def accept(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        self._require_host_or_admin(booking)
        return self._respond(services.accept_booking(booking.pk))

    @action(detail=True, methods=["post"])
    def decline(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        self._require_host_or_admin(booking)
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._respond(services.decline_booking(booking.pk, serializer.validated_data["reason"]))

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        self._require_host_or_admin(booking)
        return self._respond(services.complete_booking(booking.pk))

    @action(detail=True, methods=["get"])
    def price_history(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        snapshots = booking.price_snapshots.all()
        return Response(PriceSnapshotSerializer(snapshots, many=True).data)

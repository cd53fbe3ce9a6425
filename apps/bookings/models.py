"""Booking domain models."""

from __future__ import annotations

import builtins
import secrets
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.value_objects import DateRange

from .domain.lifecycle import BookingStatus


class Booking(models.Model):
    """Бронирование объекта недвижимости.

    Создаётся только координатором бронирований и никогда не удаляется:
    отмена и отклонение являются конечными статусами.
    """

    Status = BookingStatus

    guest = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    property = models.ForeignKey(
        "properties.Property",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    booking_code = models.CharField(max_length=12, unique=True, editable=False)
    check_in = models.DateField()
    check_out = models.DateField()
    guests_count = models.PositiveSmallIntegerField(default=1)
    status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.PENDING,
    )
    price_snapshot = models.ForeignKey(
        "bookings.BookingPriceSnapshot",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
        help_text=_("Действующий расчёт стоимости."),
    )
    currency = models.CharField(max_length=3, default="KZT")
    accepted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("Когда владелец одобрил бронирование."),
    )
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("Таймаут удержания, после которого неоплаченная бронь отклоняется."),
    )
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True, null=True)
    status_changed_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Бронирование")
        verbose_name_plural = _("Бронирования")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(check_out__gt=models.F("check_in")),
                name="booking_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["property", "check_in", "check_out"], name="booking_property_dates_idx"),
            models.Index(fields=["property", "status"], name="booking_property_status_idx"),
            models.Index(fields=["guest", "status"], name="booking_guest_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.booking_code} for {self.property_id}"

    def save(self, *args, **kwargs):  # type: ignore
        if self._state.adding and not self.booking_code:
            self.booking_code = self.generate_booking_code()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_booking_code() -> str:
        return secrets.token_hex(4).upper()

    # ``property`` is the foreign key inside this class body.
    @builtins.property
    def dates(self) -> DateRange:
        return DateRange(self.check_in, self.check_out)

    @builtins.property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    @builtins.property
    def total_price(self) -> Decimal:
        return self.price_snapshot.total_price if self.price_snapshot else Decimal("0.00")

    @builtins.property
    def service_fee(self) -> Decimal:
        return self.price_snapshot.service_fee if self.price_snapshot else Decimal("0.00")

    @builtins.property
    def is_accepted(self) -> bool:
        return self.accepted_at is not None or self.property.instant_booking

    def should_expire(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.expires_at and now > self.expires_at and self.status == self.Status.PENDING)


class BookingPriceSnapshot(models.Model):
    """Зафиксированный расчёт стоимости бронирования.

    Не изменяется после сохранения: пересчёт при изменении брони создаёт
    новую запись, старая остаётся для аудита.
    """

    booking = models.ForeignKey(
        Booking,
        on_delete=models.PROTECT,
        related_name="price_snapshots",
    )
    check_in = models.DateField()
    check_out = models.DateField()
    guests_count = models.PositiveSmallIntegerField(default=1)
    currency = models.CharField(max_length=3, default="KZT")
    nightly_rates = models.JSONField(default=dict)
    nights = models.PositiveSmallIntegerField()
    base_total = models.DecimalField(max_digits=12, decimal_places=2)
    cleaning_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    service_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Расчёт стоимости")
        verbose_name_plural = _("Расчёты стоимости")
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return f"{self.booking_id}: {self.total_price} {self.currency}"

    def save(self, *args, **kwargs):  # type: ignore
        if not self._state.adding:
            raise ValueError("Price snapshots are immutable; create a new one instead.")
        super().save(*args, **kwargs)

    @classmethod
    def from_breakdown(cls, booking: Booking, breakdown, dates: DateRange, guests_count: int) -> "BookingPriceSnapshot":
        return cls(
            booking=booking,
            check_in=dates.start_date,
            check_out=dates.end_date,
            guests_count=guests_count,
            currency=breakdown.currency,
            nightly_rates=breakdown.to_dict()["nightly_rates"],
            nights=breakdown.nights,
            base_total=breakdown.base_total,
            cleaning_fee=breakdown.cleaning_fee,
            service_fee=breakdown.service_fee,
            total_price=breakdown.total,
        )

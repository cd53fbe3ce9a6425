"""Property domain models.

Объект размещения (ресурс бронирования) и его календарь: посуточные
переопределения доступности, цены и минимального срока проживания.
Объекты редактируются каталогом; ядро бронирования читает их и пишет
только записи календаря.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.value_objects import SUPPORTED_CURRENCIES

CURRENCY_CHOICES = [(code, code) for code in SUPPORTED_CURRENCIES]


class Property(models.Model):
    """Объект недвижимости, выставленный на посуточную аренду."""

    class Status(models.TextChoices):
        ACTIVE = "active", _("Активен")
        INACTIVE = "inactive", _("Неактивен")

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="properties",
    )
    title = models.CharField(max_length=255)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    base_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    cleaning_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    service_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default="KZT")
    max_guests = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])
    min_nights = models.PositiveSmallIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
        help_text=_("Минимальный срок проживания по умолчанию."),
    )
    instant_booking = models.BooleanField(
        default=False,
        help_text=_("Бронирование подтверждается без ручного одобрения владельца."),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Объект недвижимости")
        verbose_name_plural = _("Объекты недвижимости")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["owner", "status"], name="property_owner_status_idx"),
        ]

    def __str__(self) -> str:
        return self.title

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE


class CalendarDay(models.Model):
    """Посуточная запись календаря: доступность, надбавка к цене, мин. срок."""

    property = models.ForeignKey(
        Property,
        on_delete=models.CASCADE,
        related_name="calendar_days",
    )
    date = models.DateField()
    is_available = models.BooleanField(default=True)
    price_adjustment = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        help_text=_("Добавляется к базовой цене за эту ночь (может быть отрицательной)."),
    )
    minimum_stay = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text=_("Переопределение минимального срока для ночей, включающих эту дату."),
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("День календаря")
        verbose_name_plural = _("Дни календаря")
        ordering = ["date"]
        constraints = [
            models.UniqueConstraint(
                fields=["property", "date"],
                name="calendar_day_unique_property_date",
            ),
        ]

    def __str__(self) -> str:
        flag = "open" if self.is_available else "blocked"
        return f"{self.property_id}: {self.date} ({flag})"

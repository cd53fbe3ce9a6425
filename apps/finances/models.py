"""Financial domain models."""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Payment(models.Model):
    """Платёж, связанный с бронированием.

    Отражает состояние платежа во внешнем шлюзе; меняется только по
    результатам вызовов шлюза (авторизация, списание, возврат).
    """

    class Status(models.TextChoices):
        PENDING = "pending", _("Авторизован, ожидает списания")
        COMPLETED = "completed", _("Оплачен")
        FAILED = "failed", _("Ошибка")
        REFUNDED = "refunded", _("Возврат")
        PARTIALLY_REFUNDED = "partially_refunded", _("Частичный возврат")

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payment",
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    intent_ref = models.CharField(max_length=100, blank=True)
    provider = models.CharField(max_length=50, blank=True, help_text=_("Название платёжного провайдера"))
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    refunded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="KZT")
    metadata = models.JSONField(default=dict, blank=True)
    captured_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Платёж")
        verbose_name_plural = _("Платежи")
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Payment {self.booking_id} ({self.status})"

    @property
    def is_captured(self) -> bool:
        return self.status == self.Status.COMPLETED

    def mark_captured(self) -> None:
        self.status = self.Status.COMPLETED
        self.captured_at = timezone.now()
        self.save(update_fields=["status", "captured_at", "updated_at"])

    def mark_failed(self, reason: str | None = None) -> None:
        self.status = self.Status.FAILED
        if reason:
            self.metadata["failure_reason"] = reason
        self.save(update_fields=["status", "metadata", "updated_at"])

    def mark_refunded(self, amount: Decimal) -> None:
        self.refunded_amount = amount
        self.status = (
            self.Status.REFUNDED if amount >= self.amount else self.Status.PARTIALLY_REFUNDED
        )
        self.refunded_at = timezone.now()
        self.save(update_fields=["status", "refunded_amount", "refunded_at", "updated_at"])

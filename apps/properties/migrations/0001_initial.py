from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Property",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Активен"), ("inactive", "Неактивен")],
                        default="active",
                        max_length=20,
                    ),
                ),
                (
                    "base_price",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                ("cleaning_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("service_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("currency", models.CharField(default="KZT", max_length=3)),
                (
                    "max_guests",
                    models.PositiveSmallIntegerField(
                        default=1, validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
                (
                    "min_nights",
                    models.PositiveSmallIntegerField(
                        default=1,
                        help_text="Минимальный срок проживания по умолчанию.",
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                (
                    "instant_booking",
                    models.BooleanField(
                        default=False,
                        help_text="Бронирование подтверждается без ручного одобрения владельца.",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="properties",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Объект недвижимости",
                "verbose_name_plural": "Объекты недвижимости",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["owner", "status"], name="property_owner_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CalendarDay",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField()),
                ("is_available", models.BooleanField(default=True)),
                (
                    "price_adjustment",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Добавляется к базовой цене за эту ночь (может быть отрицательной).",
                        max_digits=10,
                        null=True,
                    ),
                ),
                (
                    "minimum_stay",
                    models.PositiveSmallIntegerField(
                        blank=True,
                        help_text="Переопределение минимального срока для ночей, включающих эту дату.",
                        null=True,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "property",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="calendar_days",
                        to="properties.property",
                    ),
                ),
            ],
            options={
                "verbose_name": "День календаря",
                "verbose_name_plural": "Дни календаря",
                "ordering": ["date"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("property", "date"), name="calendar_day_unique_property_date"
                    ),
                ],
            },
        ),
    ]

"""Calendar store: availability reads and calendar overrides."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Set

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore

from apps.bookings.domain.pricing import nightly_rate
from apps.bookings.exceptions import BookingNotFound, BookingValidationError
from shared.domain.value_objects import DateRange

from .cache import get_cached_availability, invalidate_availability_on_commit
from .models import CalendarDay, Property

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityWindow:
    """Snapshot of a property's calendar for a half-open date range."""

    property_id: int
    start: date
    end: date
    available_nights: List[date]
    blocked_nights: List[date]
    per_night_rate: Dict[date, Decimal]
    min_stay: int
    currency: str = "KZT"

    @property
    def is_available(self) -> bool:
        return not self.blocked_nights

    def to_dict(self) -> dict:
        return {
            "property_id": self.property_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "available": self.is_available,
            "available_nights": [d.isoformat() for d in self.available_nights],
            "blocked_nights": [d.isoformat() for d in self.blocked_nights],
            "per_night_rate": {d.isoformat(): str(rate) for d, rate in self.per_night_rate.items()},
            "min_stay": self.min_stay,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class CalendarOverride:
    """One upsert for a calendar day; every field replaces the stored value."""

    date: date
    is_available: bool = True
    price_adjustment: Decimal | None = None
    minimum_stay: int | None = None


@dataclass
class CalendarDays:
    """CalendarDay rows in a range, indexed by date."""

    rows: Dict[date, CalendarDay] = field(default_factory=dict)

    def adjustments(self) -> Dict[date, Decimal]:
        return {
            day: row.price_adjustment
            for day, row in self.rows.items()
            if row.price_adjustment is not None
        }

    def closed_nights(self) -> Set[date]:
        return {day for day, row in self.rows.items() if not row.is_available}

    def minimum_stays(self) -> List[int]:
        return [row.minimum_stay for row in self.rows.values() if row.minimum_stay]


def _resolve_property(property_or_id) -> Property:
    if isinstance(property_or_id, Property):
        return property_or_id
    try:
        return Property.objects.get(pk=property_or_id)
    except Property.DoesNotExist:
        raise BookingNotFound(f"Property {property_or_id} not found")


def _date_range(start: date, end: date, *, field_name: str = "end") -> DateRange:
    try:
        return DateRange(start, end)
    except ValueError as exc:
        raise BookingValidationError(str(exc), field=field_name)


def load_calendar_days(property_obj: Property, dates: DateRange) -> CalendarDays:
    rows = CalendarDay.objects.filter(
        property=property_obj,
        date__gte=dates.start_date,
        date__lt=dates.end_date,
    )
    return CalendarDays(rows={row.date: row for row in rows})


def occupied_nights(property_obj: Property, dates: DateRange, *, exclude_booking_id=None) -> Set[date]:
    """Nights in ``dates`` held by pending or confirmed bookings."""

    from apps.bookings.models import Booking  # Local import to prevent circular dependency

    bookings_qs = Booking.objects.filter(
        property=property_obj,
        status__in=Booking.Status.occupying(),
        check_in__lt=dates.end_date,
        check_out__gt=dates.start_date,
    )
    if exclude_booking_id is not None:
        bookings_qs = bookings_qs.exclude(pk=exclude_booking_id)

    nights: Set[date] = set()
    for check_in, check_out in bookings_qs.values_list("check_in", "check_out"):
        nights.update(night for night in DateRange(check_in, check_out) if dates.contains(night))
    return nights


def query_availability(property_or_id, start: date, end: date, *, exclude_booking_id=None) -> AvailabilityWindow:
    """
    Read the calendar for ``[start, end)``.

    Reflects every committed booking and override visible to the current
    transaction. The reservation coordinator calls this while holding the
    property row lock, so the read and its subsequent write are isolated
    from concurrent reservations on the same property.
    """

    property_obj = _resolve_property(property_or_id)
    dates = _date_range(start, end)

    calendar = load_calendar_days(property_obj, dates)
    blocked = occupied_nights(property_obj, dates, exclude_booking_id=exclude_booking_id)
    blocked |= calendar.closed_nights()
    adjustments = calendar.adjustments()

    nights = dates.nights()
    return AvailabilityWindow(
        property_id=property_obj.pk,
        start=dates.start_date,
        end=dates.end_date,
        available_nights=[night for night in nights if night not in blocked],
        blocked_nights=[night for night in nights if night in blocked],
        per_night_rate={
            night: nightly_rate(property_obj.base_price, adjustments.get(night))
            for night in nights
        },
        min_stay=max([property_obj.min_nights or 1, *calendar.minimum_stays()]),
        currency=property_obj.currency,
    )


def check_availability(property_id, start: date, end: date) -> AvailabilityWindow:
    """Pre-booking availability answer, served through the short-TTL cache."""

    dates = _date_range(start, end)
    max_days = getattr(settings, "AVAILABILITY_MAX_DAYS", 366)
    if len(dates) > max_days:
        raise BookingValidationError(f"Availability window is limited to {max_days} nights.", field="end")

    return get_cached_availability(
        property_id,
        dates.start_date,
        dates.end_date,
        lambda: query_availability(property_id, dates.start_date, dates.end_date),
    )


@transaction.atomic
def apply_overrides(property_id, overrides: Iterable[CalendarOverride]) -> List[CalendarDay]:
    """
    Upsert calendar days in order.

    A later entry for the same date replaces the earlier one completely;
    fields left unset are reset to their defaults, not merged.
    """

    try:
        property_obj = Property.objects.select_for_update().get(pk=property_id)
    except Property.DoesNotExist:
        raise BookingNotFound(f"Property {property_id} not found")

    saved: Dict[date, CalendarDay] = {}
    for override in overrides:
        if override.minimum_stay is not None and override.minimum_stay < 1:
            raise BookingValidationError("Minimum stay must be at least one night.", field="minimum_stay")
        day, _created = CalendarDay.objects.update_or_create(
            property=property_obj,
            date=override.date,
            defaults={
                "is_available": override.is_available,
                "price_adjustment": override.price_adjustment,
                "minimum_stay": override.minimum_stay,
            },
        )
        saved[override.date] = day

    logger.info("Applied %d calendar overrides to property %s", len(saved), property_obj.pk)
    invalidate_availability_on_commit(property_obj.pk)
    return sorted(saved.values(), key=lambda day: day.date)

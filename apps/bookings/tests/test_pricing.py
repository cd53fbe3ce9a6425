from datetime import date
from decimal import Decimal

import pytest

from apps.bookings.domain.pricing import calculate_price, nightly_rate, price_difference
from shared.domain.value_objects import DateRange

STAY = DateRange(date(2030, 6, 1), date(2030, 6, 5))


def test_four_nights_without_overrides():
    breakdown = calculate_price(Decimal("100"), {}, STAY, Decimal("50"), Decimal("20"))

    assert breakdown.nights == 4
    assert breakdown.base_total == Decimal("400.00")
    assert breakdown.total == Decimal("470.00")
    assert breakdown.currency == "KZT"


def test_adjustments_apply_per_night():
    adjustments = {date(2030, 6, 2): Decimal("25.50"), date(2030, 6, 3): Decimal("-10")}

    breakdown = calculate_price(Decimal("100"), adjustments, STAY, Decimal("0"), Decimal("0"))

    rates = dict(breakdown.nightly_rates)
    assert rates[date(2030, 6, 1)] == Decimal("100.00")
    assert rates[date(2030, 6, 2)] == Decimal("125.50")
    assert rates[date(2030, 6, 3)] == Decimal("90.00")
    assert breakdown.total == Decimal("415.50")


def test_night_rate_never_goes_below_zero():
    assert nightly_rate(Decimal("100"), Decimal("-250")) == Decimal("0.00")

    breakdown = calculate_price(Decimal("100"), {date(2030, 6, 1): Decimal("-500")}, STAY, 0, 0)
    assert breakdown.base_total == Decimal("300.00")


def test_pricing_is_deterministic():
    adjustments = {date(2030, 6, 4): Decimal("33.33")}

    first = calculate_price(Decimal("99.99"), adjustments, STAY, Decimal("10"), Decimal("5"))
    second = calculate_price(Decimal("99.99"), adjustments, STAY, Decimal("10"), Decimal("5"))

    assert first == second
    assert first.to_dict() == second.to_dict()


def test_negative_fee_is_rejected():
    with pytest.raises(ValueError):
        calculate_price(Decimal("100"), {}, STAY, Decimal("-1"), Decimal("0"))


def test_price_difference_is_signed():
    assert price_difference(Decimal("470"), Decimal("570")) == Decimal("100.00")
    assert price_difference(Decimal("570"), Decimal("470")) == Decimal("-100.00")

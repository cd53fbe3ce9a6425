"""
Pricing Engine

Pure price calculation for a stay. No database access, no clock:
identical inputs always produce an identical breakdown.

    base_total = sum(max(base_rate + adjustment[night], 0) for night in stay)
    total      = base_total + cleaning_fee + service_fee

Minimum-stay rules are validated by the reservation coordinator before
pricing is requested.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Mapping, Tuple

from shared.domain.value_objects import DateRange, Money, quantize_amount

ZERO = Decimal("0.00")


def nightly_rate(base_rate, adjustment=None) -> Decimal:
    """Rate for one night: base plus adjustment, never below zero."""
    rate = Decimal(str(base_rate)) + Decimal(str(adjustment or 0))
    return quantize_amount(max(rate, ZERO))


@dataclass(frozen=True)
class PriceBreakdown:
    """Itemized price of a stay."""

    currency: str
    nightly_rates: Tuple[Tuple[date, Decimal], ...]
    base_total: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    total: Decimal

    @property
    def nights(self) -> int:
        return len(self.nightly_rates)

    def to_dict(self) -> dict:
        return {
            "currency": self.currency,
            "nights": self.nights,
            "nightly_rates": {night.isoformat(): str(rate) for night, rate in self.nightly_rates},
            "base_total": str(self.base_total),
            "cleaning_fee": str(self.cleaning_fee),
            "service_fee": str(self.service_fee),
            "total": str(self.total),
        }


def calculate_price(
    base_rate,
    adjustments: Mapping[date, Decimal],
    dates: DateRange,
    cleaning_fee,
    service_fee,
    currency: str = "KZT",
) -> PriceBreakdown:
    """
    Compute the itemized price for the occupied nights of ``dates``.

    Args:
        base_rate: Property nightly base rate
        adjustments: Per-night additive adjustments (missing nights adjust by 0)
        dates: Half-open stay interval
        cleaning_fee: Flat fee per stay
        service_fee: Flat fee per stay
        currency: ISO currency code of all amounts

    Raises:
        ValueError: On negative fees or an unsupported currency
    """
    rates = tuple((night, nightly_rate(base_rate, adjustments.get(night))) for night in dates)

    base_total = Money(ZERO, currency)
    for _night, rate in rates:
        base_total = base_total + Money(rate, currency)

    cleaning = Money(cleaning_fee, currency)
    service = Money(service_fee, currency)
    total = base_total + cleaning + service

    return PriceBreakdown(
        currency=currency,
        nightly_rates=rates,
        base_total=base_total.amount,
        cleaning_fee=cleaning.amount,
        service_fee=service.amount,
        total=total.amount,
    )


def price_difference(old_total, new_total) -> Decimal:
    """Signed change of the total when a booking is re-priced."""
    return quantize_amount(Decimal(str(new_total)) - Decimal(str(old_total)))

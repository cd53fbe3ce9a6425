"""
Cancellation / Refund Evaluator

Maps (booking, actor, now) to the terminal status and the refund owed.

Guest cancellations:
- more than 7 days before check-in: total minus service fee
- 7 days or fewer before check-in: half of (total minus service fee)

Host cancellations (an admin acts as the host): total plus 10%
compensation.

Amounts are rounded to the minor unit with ROUND_HALF_EVEN.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from django.utils import timezone  # type: ignore

from apps.bookings.domain.lifecycle import BookingStatus, is_terminal
from apps.bookings.exceptions import InvalidTransitionError
from shared.domain.value_objects import quantize_amount

FREE_CANCELLATION_DAYS = 7
LATE_GUEST_REFUND_RATE = Decimal("0.5")
HOST_COMPENSATION_RATE = Decimal("0.10")


class CancellationActor(str, Enum):
    GUEST = "guest"
    HOST = "host"
    ADMIN = "admin"


@dataclass(frozen=True)
class CancellationOutcome:
    new_status: BookingStatus
    refund_amount: Decimal
    days_before_check_in: int


def days_before_check_in(check_in: date, now) -> int:
    if isinstance(now, datetime):
        today = timezone.localdate(now) if timezone.is_aware(now) else now.date()
    else:
        today = now
    return (check_in - today).days


def evaluate_cancellation(booking, actor, now) -> CancellationOutcome:
    """
    Evaluate a cancellation request without side effects.

    ``booking`` needs ``status``, ``check_in``, ``total_price`` and
    ``service_fee``; the model instance and plain objects both work.

    Raises:
        InvalidTransitionError: If the booking is already terminal
    """
    actor = CancellationActor(actor)
    target = BookingStatus.CANCELLED_BY_GUEST if actor == CancellationActor.GUEST else BookingStatus.CANCELLED_BY_HOST

    if is_terminal(booking.status):
        raise InvalidTransitionError(
            str(booking.status),
            target.value,
            f"Booking is already {booking.status}; nothing to cancel.",
        )

    total = Decimal(str(booking.total_price))
    service_fee = Decimal(str(booking.service_fee))
    days_left = days_before_check_in(booking.check_in, now)

    if actor == CancellationActor.GUEST:
        refundable = max(total - service_fee, Decimal("0"))
        if days_left > FREE_CANCELLATION_DAYS:
            refund = refundable
        else:
            refund = refundable * LATE_GUEST_REFUND_RATE
    else:
        refund = total + total * HOST_COMPENSATION_RATE

    return CancellationOutcome(
        new_status=target,
        refund_amount=quantize_amount(refund),
        days_before_check_in=days_left,
    )

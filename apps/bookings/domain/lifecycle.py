"""
Booking Status Finite State Machine

State transitions:
- PENDING -> CONFIRMED (payment captured for an accepted booking)
- PENDING -> DECLINED (host rejected, payment failed or hold expired)
- PENDING -> CANCELLED_BY_GUEST / CANCELLED_BY_HOST (through the refund evaluator)
- CONFIRMED -> CANCELLED_BY_GUEST / CANCELLED_BY_HOST (through the refund evaluator)
- CONFIRMED -> COMPLETED (checkout date has passed)

COMPLETED, DECLINED and both cancellation states are terminal.
"""

from __future__ import annotations

from typing import Dict, FrozenSet

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.bookings.exceptions import InvalidTransitionError


class BookingStatus(models.TextChoices):
    PENDING = "pending", _("Ожидает подтверждения")
    CONFIRMED = "confirmed", _("Подтверждено")
    COMPLETED = "completed", _("Завершено")
    DECLINED = "declined", _("Отклонено")
    CANCELLED_BY_GUEST = "cancelled_by_guest", _("Отменено гостем")
    CANCELLED_BY_HOST = "cancelled_by_host", _("Отменено владельцем")

    @classmethod
    def occupying(cls) -> FrozenSet["BookingStatus"]:
        """Statuses whose nights are unavailable to other requesters."""
        return frozenset({cls.PENDING, cls.CONFIRMED})

    @classmethod
    def terminal(cls) -> FrozenSet["BookingStatus"]:
        return frozenset({cls.COMPLETED, cls.DECLINED, cls.CANCELLED_BY_GUEST, cls.CANCELLED_BY_HOST})

    @classmethod
    def cancellations(cls) -> FrozenSet["BookingStatus"]:
        return frozenset({cls.CANCELLED_BY_GUEST, cls.CANCELLED_BY_HOST})


TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.DECLINED,
        BookingStatus.CANCELLED_BY_GUEST,
        BookingStatus.CANCELLED_BY_HOST,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED_BY_GUEST,
        BookingStatus.CANCELLED_BY_HOST,
    }),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.DECLINED: frozenset(),
    BookingStatus.CANCELLED_BY_GUEST: frozenset(),
    BookingStatus.CANCELLED_BY_HOST: frozenset(),
}


def is_terminal(status) -> bool:
    return BookingStatus(status) in BookingStatus.terminal()


def can_transition(current, target) -> bool:
    return BookingStatus(target) in TRANSITIONS[BookingStatus(current)]


def assert_transition(current, target, *, outcome=None) -> BookingStatus:
    """
    Validate ``current -> target`` against the transition table.

    Cancellation statuses are only reachable with the outcome produced by
    the refund evaluator, and only the status that outcome names.

    Raises:
        InvalidTransitionError: If the edge does not exist
    """
    current = BookingStatus(current)
    target = BookingStatus(target)

    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)

    if target in BookingStatus.cancellations():
        if outcome is None or BookingStatus(outcome.new_status) != target:
            raise InvalidTransitionError(
                current.value,
                target.value,
                "Cancellation statuses are assigned by the cancellation policy only.",
            )
    return target

from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from apps.bookings.domain.lifecycle import BookingStatus
from apps.bookings.domain.refunds import CancellationActor, evaluate_cancellation
from apps.bookings.exceptions import InvalidTransitionError

CHECK_IN = date(2030, 6, 15)


def _booking(status=BookingStatus.CONFIRMED):
    return SimpleNamespace(
        status=status,
        check_in=CHECK_IN,
        total_price=Decimal("500.00"),
        service_fee=Decimal("50.00"),
    )


def test_guest_cancelling_early_gets_total_minus_service_fee():
    outcome = evaluate_cancellation(_booking(), CancellationActor.GUEST, CHECK_IN - timedelta(days=10))

    assert outcome.new_status == BookingStatus.CANCELLED_BY_GUEST
    assert outcome.refund_amount == Decimal("450.00")
    assert outcome.days_before_check_in == 10


def test_guest_cancelling_late_gets_half():
    outcome = evaluate_cancellation(_booking(), CancellationActor.GUEST, CHECK_IN - timedelta(days=3))

    assert outcome.refund_amount == Decimal("225.00")


def test_seven_days_before_is_already_late():
    outcome = evaluate_cancellation(_booking(), CancellationActor.GUEST, CHECK_IN - timedelta(days=7))

    assert outcome.refund_amount == Decimal("225.00")


def test_host_cancellation_adds_compensation():
    outcome = evaluate_cancellation(_booking(), CancellationActor.HOST, CHECK_IN - timedelta(days=3))

    assert outcome.new_status == BookingStatus.CANCELLED_BY_HOST
    assert outcome.refund_amount == Decimal("550.00")


def test_admin_acts_as_host():
    outcome = evaluate_cancellation(_booking(BookingStatus.PENDING), "admin", CHECK_IN - timedelta(days=30))

    assert outcome.new_status == BookingStatus.CANCELLED_BY_HOST
    assert outcome.refund_amount == Decimal("550.00")


def test_naive_datetime_is_accepted():
    outcome = evaluate_cancellation(_booking(), CancellationActor.GUEST, datetime(2030, 6, 5, 12, 0))

    assert outcome.days_before_check_in == 10


@pytest.mark.parametrize("status", sorted(BookingStatus.terminal()))
def test_terminal_bookings_cannot_be_cancelled(status):
    with pytest.raises(InvalidTransitionError):
        evaluate_cancellation(_booking(status), CancellationActor.GUEST, CHECK_IN - timedelta(days=10))

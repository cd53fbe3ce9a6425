"""Reservation coordinator and lifecycle services."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core import mail
from django.core.exceptions import ValidationError
from django.db import OperationalError
from django.utils import timezone

from apps.bookings import locking, services
from apps.bookings.domain.refunds import CancellationActor
from apps.bookings.exceptions import (
    BookingConflictError,
    BookingNotFound,
    BookingPermissionDenied,
    BookingValidationError,
    ExternalCollaboratorError,
    InvalidTransitionError,
    PaymentFailedError,
)
from apps.bookings.models import Booking, BookingPriceSnapshot
from apps.finances.models import Payment
from apps.properties.models import Property
from apps.properties.services import CalendarOverride, apply_overrides, query_availability

pytestmark = pytest.mark.django_db


def _book(property_obj, guest, check_in, check_out, guests_count=1):
    return services.create_booking(property_obj.pk, guest, check_in, check_out, guests_count).booking


# ----------------------------------------------------------------------------
# create_booking
# ----------------------------------------------------------------------------

def test_create_places_pending_hold_with_price_snapshot(property_obj, guest, stay, fake_gateway):
    result = services.create_booking(property_obj.pk, guest, *stay, guests_count=2)
    booking = result.booking

    assert booking.status == Booking.Status.PENDING
    assert booking.total_price == Decimal("470.00")
    assert booking.price_snapshot.nights == 4
    assert booking.expires_at > timezone.now()
    assert len(booking.booking_code) == 8

    assert result.payment.status == Payment.Status.PENDING
    assert result.payment.amount == Decimal("470.00")
    assert fake_gateway.calls[0] == ("authorize", Decimal("470.00"), "KZT", booking.booking_code)


def test_overlapping_request_reports_conflicting_nights(property_obj, guest, make_user, stay):
    check_in, check_out = stay
    _book(property_obj, guest, check_in, check_out)

    with pytest.raises(BookingConflictError) as exc_info:
        _book(property_obj, make_user("second"), check_in + timedelta(days=2), check_out + timedelta(days=1))

    assert exc_info.value.conflicting_dates == [check_in + timedelta(days=2), check_in + timedelta(days=3)]
    assert Booking.objects.count() == 1


def test_back_to_back_stays_do_not_conflict(property_obj, guest, make_user, stay):
    check_in, check_out = stay
    _book(property_obj, guest, check_in, check_out)

    second = _book(property_obj, make_user("second"), check_out, check_out + timedelta(days=2))
    earlier = _book(property_obj, make_user("third"), check_in - timedelta(days=2), check_in)

    assert second.status == Booking.Status.PENDING
    assert earlier.status == Booking.Status.PENDING


def test_host_blocked_day_is_a_conflict(property_obj, guest, stay):
    check_in, check_out = stay
    blocked = check_in + timedelta(days=1)
    apply_overrides(property_obj.pk, [CalendarOverride(date=blocked, is_available=False)])

    with pytest.raises(BookingConflictError) as exc_info:
        _book(property_obj, guest, check_in, check_out)

    assert exc_info.value.conflicting_dates == [blocked]


def test_minimum_stay_is_enforced(property_obj, guest, stay):
    check_in, _ = stay
    apply_overrides(property_obj.pk, [CalendarOverride(date=check_in, minimum_stay=5)])

    with pytest.raises(BookingValidationError) as exc_info:
        _book(property_obj, guest, check_in, check_in + timedelta(days=4))

    assert exc_info.value.field == "check_out"
    assert _book(property_obj, guest, check_in, check_in + timedelta(days=5)).nights == 5


def test_price_adjustments_reach_the_snapshot(property_obj, guest, stay):
    check_in, check_out = stay
    apply_overrides(property_obj.pk, [CalendarOverride(date=check_in, price_adjustment=Decimal("25"))])

    booking = _book(property_obj, guest, check_in, check_out)

    assert booking.total_price == Decimal("495.00")
    assert booking.price_snapshot.nightly_rates[check_in.isoformat()] == "125.00"


@pytest.mark.parametrize(
    "check_in_offset, nights, guests_count, field",
    [
        (0, 2, 1, "check_in"),
        (-3, 2, 1, "check_in"),
        (10, 0, 1, "check_out"),
        (10, 91, 1, "check_out"),
        (10, 2, 5, "guests_count"),
        (10, 2, 0, "guests_count"),
    ],
)
def test_invalid_requests_are_rejected(property_obj, guest, today, check_in_offset, nights, guests_count, field):
    check_in = today + timedelta(days=check_in_offset)

    with pytest.raises(BookingValidationError) as exc_info:
        _book(property_obj, guest, check_in, check_in + timedelta(days=nights), guests_count)

    assert exc_info.value.field == field
    assert not Booking.objects.exists()


def test_inactive_property_is_rejected(make_property, guest, stay):
    property_obj = make_property(status=Property.Status.INACTIVE)

    with pytest.raises(BookingValidationError) as exc_info:
        _book(property_obj, guest, *stay)

    assert exc_info.value.field == "property"


@pytest.mark.parametrize(
    "overrides",
    [
        {"currency": "GBP"},
        {"cleaning_fee": Decimal("-10.00")},
        {"service_fee": Decimal("-1.00")},
    ],
)
def test_misconfigured_pricing_is_a_validation_error(make_property, guest, stay, fake_gateway, overrides):
    property_obj = make_property(**overrides)

    with pytest.raises(BookingValidationError) as exc_info:
        _book(property_obj, guest, *stay)

    assert exc_info.value.field == "property"
    assert not Booking.objects.exists()
    assert fake_gateway.calls == []


def test_property_validators_reject_bad_pricing(make_property):
    property_obj = make_property()
    property_obj.currency = "GBP"
    property_obj.cleaning_fee = Decimal("-10.00")

    with pytest.raises(ValidationError) as exc_info:
        property_obj.full_clean()

    assert {"currency", "cleaning_fee"} <= set(exc_info.value.message_dict)


def test_unknown_property_is_not_found(guest, stay):
    with pytest.raises(BookingNotFound):
        services.create_booking(999_999, guest, *stay)


def test_refused_authorization_declines_the_hold(property_obj, guest, stay, fake_gateway):
    fake_gateway.fail_authorize = True

    with pytest.raises(PaymentFailedError):
        services.create_booking(property_obj.pk, guest, *stay)

    booking = Booking.objects.get()
    assert booking.status == Booking.Status.DECLINED
    assert Payment.objects.get(booking=booking).status == Payment.Status.FAILED
    assert query_availability(property_obj, *stay).is_available


# ----------------------------------------------------------------------------
# update_booking
# ----------------------------------------------------------------------------

def test_update_reprices_and_keeps_previous_snapshot(property_obj, guest, stay):
    check_in, check_out = stay
    booking = _book(property_obj, guest, check_in, check_out)

    result = services.update_booking(booking.pk, check_out=check_out + timedelta(days=1))

    assert result.price_difference == Decimal("100.00")
    assert result.previous_snapshot.total_price == Decimal("470.00")
    assert result.booking.total_price == Decimal("570.00")
    assert list(
        BookingPriceSnapshot.objects.filter(booking=booking).values_list("total_price", flat=True)
    ) == [Decimal("470.00"), Decimal("570.00")]


def test_repricing_reauthorizes_pending_payment(property_obj, guest, stay, fake_gateway):
    check_in, check_out = stay
    booking = _book(property_obj, guest, check_in, check_out)
    first_ref = Payment.objects.get(booking=booking).intent_ref

    services.update_booking(booking.pk, check_out=check_out + timedelta(days=1))

    payment = Payment.objects.get(booking=booking)
    assert payment.amount == Decimal("570.00")
    assert payment.intent_ref != first_ref
    assert payment.metadata["previous_intent_ref"] == first_ref
    assert fake_gateway.calls[-1] == ("authorize", Decimal("570.00"), "KZT", booking.booking_code)

    services.confirm_payment(booking.pk)
    assert ("capture", payment.intent_ref) in fake_gateway.calls


def test_repricing_keeps_authorization_when_refused(property_obj, guest, stay, fake_gateway):
    check_in, check_out = stay
    booking = _book(property_obj, guest, check_in, check_out)
    fake_gateway.fail_authorize = True

    result = services.update_booking(booking.pk, check_out=check_out + timedelta(days=1))

    assert result.booking.total_price == Decimal("570.00")
    assert Payment.objects.get(booking=booking).amount == Decimal("470.00")


def test_repricing_leaves_captured_payment_alone(property_obj, guest, stay, fake_gateway):
    check_in, check_out = stay
    booking = _book(property_obj, guest, check_in, check_out)
    services.confirm_payment(booking.pk)
    calls_before = len(fake_gateway.calls)

    services.update_booking(booking.pk, check_out=check_out + timedelta(days=1))

    payment = Payment.objects.get(booking=booking)
    assert payment.status == Payment.Status.COMPLETED
    assert payment.amount == Decimal("470.00")
    assert len(fake_gateway.calls) == calls_before


def test_update_may_shift_into_own_nights(property_obj, guest, stay):
    check_in, check_out = stay
    booking = _book(property_obj, guest, check_in, check_out)

    result = services.update_booking(
        booking.pk, check_in=check_in + timedelta(days=1), check_out=check_out + timedelta(days=1)
    )

    assert result.booking.check_in == check_in + timedelta(days=1)
    assert result.price_difference == Decimal("0.00")


def test_update_into_someone_elses_nights_conflicts(property_obj, guest, make_user, stay):
    check_in, check_out = stay
    booking = _book(property_obj, guest, check_in, check_out)
    _book(property_obj, make_user("neighbour"), check_out, check_out + timedelta(days=3))

    with pytest.raises(BookingConflictError) as exc_info:
        services.update_booking(booking.pk, check_out=check_out + timedelta(days=2))

    assert exc_info.value.conflicting_dates == [check_out, check_out + timedelta(days=1)]
    booking.refresh_from_db()
    assert booking.check_out == check_out
    assert booking.price_snapshots.count() == 1


def test_update_guest_count_respects_capacity(property_obj, guest, stay):
    booking = _book(property_obj, guest, *stay)

    assert services.update_booking(booking.pk, guests_count=4).booking.guests_count == 4
    with pytest.raises(BookingValidationError):
        services.update_booking(booking.pk, guests_count=5)


def test_terminal_booking_cannot_be_updated(property_obj, guest, stay):
    booking = _book(property_obj, guest, *stay)
    services.decline_booking(booking.pk, reason="Не подходит")

    with pytest.raises(InvalidTransitionError) as exc_info:
        services.update_booking(booking.pk, guests_count=2)

    assert exc_info.value.current == Booking.Status.DECLINED
    booking.refresh_from_db()
    assert booking.guests_count == 1


def test_only_pending_booking_can_be_accepted(property_obj, guest, stay):
    booking = _book(property_obj, guest, *stay)
    services.confirm_payment(booking.pk)

    with pytest.raises(InvalidTransitionError):
        services.accept_booking(booking.pk)

    booking.refresh_from_db()
    assert booking.accepted_at is None


# ----------------------------------------------------------------------------
# lifecycle
# ----------------------------------------------------------------------------

def test_confirm_captures_payment(property_obj, guest, stay, fake_gateway):
    booking = _book(property_obj, guest, *stay)

    confirmed = services.confirm_payment(booking.pk)

    assert confirmed.status == Booking.Status.CONFIRMED
    payment = Payment.objects.get(booking=booking)
    assert payment.status == Payment.Status.COMPLETED
    assert payment.captured_at is not None
    assert ("capture", payment.intent_ref) in fake_gateway.calls


def test_confirm_waits_for_host_acceptance(make_property, guest, stay):
    property_obj = make_property(instant_booking=False)
    booking = _book(property_obj, guest, *stay)

    with pytest.raises(BookingValidationError):
        services.confirm_payment(booking.pk)

    services.accept_booking(booking.pk)
    assert services.confirm_payment(booking.pk).status == Booking.Status.CONFIRMED


def test_confirming_a_declined_booking_is_rejected(property_obj, guest, stay):
    booking = _book(property_obj, guest, *stay)
    services.decline_booking(booking.pk, reason="Ремонт")

    with pytest.raises(InvalidTransitionError):
        services.confirm_payment(booking.pk)

    booking.refresh_from_db()
    assert booking.status == Booking.Status.DECLINED
    assert booking.cancellation_reason == "Ремонт"


def test_refused_capture_declines_and_frees_nights(property_obj, guest, stay, fake_gateway):
    booking = _book(property_obj, guest, *stay)
    fake_gateway.refuse_capture = True

    with pytest.raises(PaymentFailedError):
        services.confirm_payment(booking.pk)

    booking.refresh_from_db()
    assert booking.status == Booking.Status.DECLINED
    assert Payment.objects.get(booking=booking).status == Payment.Status.FAILED
    assert query_availability(property_obj, *stay).is_available


def test_cancelling_pending_booking_frees_nights(property_obj, guest, make_user, stay):
    booking = _book(property_obj, guest, *stay)

    result = services.cancel_booking(booking.pk, guest, "Планы изменились")

    assert result.booking.status == Booking.Status.CANCELLED_BY_GUEST
    assert result.refunded_amount == Decimal("0.00")
    assert result.booking.refund_amount == Decimal("0.00")
    assert result.booking.cancelled_at is not None
    assert _book(property_obj, make_user("next"), *stay).status == Booking.Status.PENDING


def test_guest_cancellation_refunds_captured_payment(make_property, guest, stay, fake_gateway):
    property_obj = make_property(service_fee=Decimal("50.00"))
    check_in, _ = stay
    booking = _book(property_obj, guest, *stay)
    services.confirm_payment(booking.pk)

    result = services.cancel_booking(booking.pk, guest, now=timezone.now() + timedelta(days=20))

    assert result.outcome.days_before_check_in == (check_in - timezone.localdate()).days - 20
    assert result.refunded_amount == Decimal("450.00")
    assert result.booking.refund_amount == Decimal("450.00")
    payment = Payment.objects.get(booking=booking)
    assert payment.status == Payment.Status.PARTIALLY_REFUNDED
    assert fake_gateway.calls[-1] == ("refund", payment.intent_ref, Decimal("450.00"))


@pytest.fixture
def booking_save_fails_once(monkeypatch):
    """Make the next ``Booking.save`` touching ``field`` hit a lock error."""

    monkeypatch.setattr(locking.time, "sleep", lambda seconds: None)
    original_save = Booking.save

    def arm(field):
        armed = {"pending": True}

        def flaky_save(self, *args, **kwargs):
            if armed["pending"] and field in (kwargs.get("update_fields") or ()):
                armed["pending"] = False
                raise OperationalError("database is locked")
            return original_save(self, *args, **kwargs)

        monkeypatch.setattr(Booking, "save", flaky_save)
        return armed

    return arm


def test_retried_cancellation_refunds_once(property_obj, guest, stay, fake_gateway, booking_save_fails_once):
    booking = _book(property_obj, guest, *stay)
    services.confirm_payment(booking.pk)
    armed = booking_save_fails_once("refund_amount")

    result = services.cancel_booking(booking.pk, guest, "Планы изменились")

    assert not armed["pending"]
    assert result.refunded_amount == Decimal("450.00")
    refunds = [call for call in fake_gateway.calls if call[0] == "refund"]
    assert refunds == [("refund", result.booking.payment.intent_ref, Decimal("450.00"))]
    assert fake_gateway.idempotency_keys[-1] == f"{booking.booking_code}-refund"
    payment = Payment.objects.get(booking=booking)
    assert payment.refunded_amount == Decimal("450.00")
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CANCELLED_BY_GUEST


def test_retried_confirmation_captures_once(property_obj, guest, stay, fake_gateway, booking_save_fails_once):
    booking = _book(property_obj, guest, *stay)
    armed = booking_save_fails_once("status")

    confirmed = services.confirm_payment(booking.pk)

    assert not armed["pending"]
    assert confirmed.status == Booking.Status.CONFIRMED
    captures = [call for call in fake_gateway.calls if call[0] == "capture"]
    assert len(captures) == 1
    assert fake_gateway.idempotency_keys == [f"{booking.booking_code}-capture"]
    assert Payment.objects.get(booking=booking).status == Payment.Status.COMPLETED


def test_late_guest_cancellation_refunds_half(make_property, guest, stay):
    property_obj = make_property(service_fee=Decimal("50.00"))
    booking = _book(property_obj, guest, *stay)
    services.confirm_payment(booking.pk)

    result = services.cancel_booking(booking.pk, guest, now=timezone.now() + timedelta(days=27))

    assert result.refunded_amount == Decimal("225.00")


def test_host_cancellation_refunds_with_compensation(make_property, owner, guest, stay):
    property_obj = make_property(service_fee=Decimal("50.00"))
    booking = _book(property_obj, guest, *stay)
    services.confirm_payment(booking.pk)

    result = services.cancel_booking(booking.pk, owner, "Протечка")

    assert result.booking.status == Booking.Status.CANCELLED_BY_HOST
    assert result.refunded_amount == Decimal("550.00")
    assert Payment.objects.get(booking=booking).status == Payment.Status.REFUNDED


def test_refused_refund_keeps_booking_confirmed(property_obj, guest, stay, fake_gateway):
    booking = _book(property_obj, guest, *stay)
    services.confirm_payment(booking.pk)
    fake_gateway.refuse_refund = True

    with pytest.raises(ExternalCollaboratorError):
        services.cancel_booking(booking.pk, guest)

    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED
    assert booking.refund_amount is None
    assert Payment.objects.get(booking=booking).status == Payment.Status.COMPLETED


def test_second_cancellation_is_an_invalid_transition(property_obj, guest, stay):
    booking = _book(property_obj, guest, *stay)
    services.cancel_booking(booking.pk, guest)

    with pytest.raises(InvalidTransitionError):
        services.cancel_booking(booking.pk, guest)


def test_only_stakeholders_can_cancel(property_obj, guest, make_user, stay):
    booking = _book(property_obj, guest, *stay)

    with pytest.raises(BookingPermissionDenied):
        services.cancel_booking(booking.pk, make_user("stranger"))

    admin = make_user("admin", is_staff=True)
    assert services.resolve_cancellation_actor(booking, admin) == CancellationActor.ADMIN
    assert services.cancel_booking(booking.pk, admin).booking.status == Booking.Status.CANCELLED_BY_HOST


def test_complete_after_checkout(property_obj, guest, stay):
    check_in, check_out = stay
    booking = _book(property_obj, guest, check_in, check_out)

    with pytest.raises(InvalidTransitionError):
        services.complete_booking(booking.pk, today=check_out)

    services.confirm_payment(booking.pk)
    with pytest.raises(BookingValidationError):
        services.complete_booking(booking.pk, today=check_out - timedelta(days=1))

    assert services.complete_booking(booking.pk, today=check_out).status == Booking.Status.COMPLETED


def test_expired_hold_is_declined(property_obj, guest, stay):
    booking = _book(property_obj, guest, *stay)

    assert not services.expire_booking(booking.pk)
    assert services.expire_booking(booking.pk, now=booking.expires_at + timedelta(minutes=1))

    booking.refresh_from_db()
    assert booking.status == Booking.Status.DECLINED
    assert booking.cancellation_reason == "Hold expired"


def test_confirmed_booking_never_expires(property_obj, guest, stay):
    booking = _book(property_obj, guest, *stay)
    services.confirm_payment(booking.pk)

    assert not services.expire_booking(booking.pk, now=booking.expires_at + timedelta(days=1))


# ----------------------------------------------------------------------------
# queries
# ----------------------------------------------------------------------------

def test_list_bookings_for_user(property_obj, owner, guest, make_user, stay):
    check_in, check_out = stay
    first = _book(property_obj, guest, check_in, check_out)
    second = _book(property_obj, guest, check_out, check_out + timedelta(days=2))
    services.decline_booking(second.pk)

    assert set(services.list_bookings_for_user(guest)) == {first, second}
    assert set(services.list_bookings_for_user(owner)) == {first, second}
    assert list(services.list_bookings_for_user(guest, status="declined")) == [second]
    assert not services.list_bookings_for_user(make_user("stranger")).exists()

    with pytest.raises(BookingValidationError):
        services.list_bookings_for_user(guest, status="lost")


def test_get_booking(property_obj, guest, stay):
    booking = _book(property_obj, guest, *stay)

    assert services.get_booking(booking.pk) == booking
    with pytest.raises(BookingNotFound):
        services.get_booking(999_999)


# ----------------------------------------------------------------------------
# end to end
# ----------------------------------------------------------------------------

def test_end_to_end_flow(property_obj, guest, make_user, stay, django_capture_on_commit_callbacks):
    check_in, check_out = stay

    with django_capture_on_commit_callbacks(execute=True):
        booking = _book(property_obj, guest, check_in, check_out)
    assert booking.total_price == Decimal("470.00")
    assert booking.status == Booking.Status.PENDING

    with django_capture_on_commit_callbacks(execute=True):
        booking = services.confirm_payment(booking.pk)
    assert booking.status == Booking.Status.CONFIRMED

    with pytest.raises(BookingConflictError) as exc_info:
        _book(property_obj, make_user("late"), check_in + timedelta(days=2), check_out + timedelta(days=1))
    assert exc_info.value.conflicting_dates == [check_in + timedelta(days=2), check_in + timedelta(days=3)]

    subjects = [message.subject for message in mail.outbox]
    assert any("ожидает подтверждения" in subject for subject in subjects)
    assert any("подтверждено" in subject for subject in subjects)

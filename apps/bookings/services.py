"""Reservation coordinator and booking lifecycle services.

These functions are the only writers of ``Booking``. Each write runs as a
single unit of work serialized per property (see ``locking.run_locked``):
the conflict check reads the calendar store inside the same transaction
that persists the result, so two overlapping requests can never both
succeed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.db.models import Q, QuerySet  # type: ignore
from django.utils import timezone  # type: ignore

from apps.finances.gateways import PaymentGatewayError, get_payment_gateway
from apps.finances.models import Payment
from apps.properties.models import Property
from apps.properties.services import load_calendar_days, query_availability
from shared.domain.value_objects import DateRange

from .domain.events import (
    BookingAccepted,
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingDeclined,
    BookingUpdated,
)
from .domain.lifecycle import BookingStatus, assert_transition
from .domain.pricing import PriceBreakdown, calculate_price, price_difference
from .domain.refunds import CancellationActor, CancellationOutcome, evaluate_cancellation
from .exceptions import (
    BookingConflictError,
    BookingNotFound,
    BookingPermissionDenied,
    BookingValidationError,
    ExternalCollaboratorError,
    InvalidTransitionError,
    PaymentFailedError,
)
from .locking import run_locked
from .models import Booking, BookingPriceSnapshot

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    booking: Booking
    payment: Payment


@dataclass
class BookingUpdateResult:
    booking: Booking
    previous_snapshot: BookingPriceSnapshot | None
    price_difference: Decimal


@dataclass
class CancellationResult:
    booking: Booking
    outcome: CancellationOutcome
    refunded_amount: Decimal


# ============================================================================
# RESERVATION COORDINATOR
# ============================================================================

def validate_stay(property_obj: Property, check_in: date, check_out: date, guests_count: int, *, today: date | None = None) -> DateRange:
    """Input and policy checks that need no calendar access."""

    if not property_obj.is_active:
        raise BookingValidationError("Property is not accepting reservations.", field="property")
    if check_out <= check_in:
        raise BookingValidationError("Check-out date must be after check-in date.", field="check_out")

    today = today or timezone.localdate()
    if check_in < today + timedelta(days=1):
        raise BookingValidationError("Check-in must be tomorrow or later.", field="check_in")

    dates = DateRange(check_in, check_out)
    max_nights = getattr(settings, "BOOKING_MAX_NIGHTS", 90)
    if len(dates) > max_nights:
        raise BookingValidationError(f"A stay cannot exceed {max_nights} nights.", field="check_out")

    if guests_count < 1:
        raise BookingValidationError("At least one guest is required.", field="guests_count")
    if guests_count > property_obj.max_guests:
        raise BookingValidationError(
            f"Guests count ({guests_count}) exceeds property capacity ({property_obj.max_guests}).",
            field="guests_count",
        )
    return dates


def price_available_stay(property_obj: Property, dates: DateRange, *, exclude_booking_id=None) -> PriceBreakdown:
    """
    Conflict check, minimum-stay check and pricing, in that order.

    Must run inside the property's unit of work.
    """

    window = query_availability(
        property_obj,
        dates.start_date,
        dates.end_date,
        exclude_booking_id=exclude_booking_id,
    )
    if window.blocked_nights:
        logger.info(
            "Conflict on property %s for %s: %s",
            property_obj.pk, dates, [night.isoformat() for night in window.blocked_nights],
        )
        raise BookingConflictError(window.blocked_nights)

    if len(dates) < window.min_stay:
        raise BookingValidationError(
            f"Minimum stay for these dates is {window.min_stay} nights.",
            field="check_out",
        )

    adjustments = load_calendar_days(property_obj, dates).adjustments()
    try:
        return calculate_price(
            property_obj.base_price,
            adjustments,
            dates,
            property_obj.cleaning_fee,
            property_obj.service_fee,
            property_obj.currency,
        )
    except ValueError as exc:
        logger.error("Property %s has an unusable price setup: %s", property_obj.pk, exc)
        raise BookingValidationError(f"Property pricing is misconfigured: {exc}", field="property") from exc


def _save_snapshot(booking: Booking, breakdown: PriceBreakdown, dates: DateRange, guests_count: int) -> BookingPriceSnapshot:
    snapshot = BookingPriceSnapshot.from_breakdown(booking, breakdown, dates, guests_count)
    snapshot.save()
    return snapshot


def create_booking(property_id, guest, check_in: date, check_out: date, guests_count: int = 1) -> BookingResult:
    """
    Place a pending hold and request payment authorization.

    Raises:
        BookingValidationError: Bad input, capacity or minimum stay
        BookingConflictError: Some requested night is occupied
        TransientStoreError: Property stayed locked past the retry budget
        PaymentFailedError: Authorization refused (booking is declined)
    """

    guest_id = getattr(guest, "pk", guest)

    def operation(uow, property_obj: Property) -> Booking:
        dates = validate_stay(property_obj, check_in, check_out, guests_count)
        breakdown = price_available_stay(property_obj, dates)

        hold_minutes = getattr(settings, "BOOKING_HOLD_MINUTES", 24 * 60)
        booking = Booking.objects.create(
            property=property_obj,
            guest_id=guest_id,
            check_in=dates.start_date,
            check_out=dates.end_date,
            guests_count=guests_count,
            status=Booking.Status.PENDING,
            currency=breakdown.currency,
            expires_at=timezone.now() + timedelta(minutes=hold_minutes),
        )
        booking.price_snapshot = _save_snapshot(booking, breakdown, dates, guests_count)
        booking.save(update_fields=["price_snapshot", "updated_at"])

        uow.record(BookingCreated(
            aggregate_id=booking.pk,
            booking_id=booking.pk,
            property_id=property_obj.pk,
            status=booking.status,
            check_in=booking.check_in,
            check_out=booking.check_out,
            total_price=breakdown.total,
        ))
        return booking

    booking = run_locked(property_id, operation, label="create_booking")
    logger.info(
        "Booking %s created on property %s for %s - %s, total %s %s",
        booking.booking_code, property_id, booking.check_in, booking.check_out,
        booking.total_price, booking.currency,
    )

    payment = authorize_payment(booking)
    return BookingResult(booking=booking, payment=payment)


def authorize_payment(booking: Booking) -> Payment:
    """Hand the hold's total to the gateway; a refusal declines the booking."""

    gateway = get_payment_gateway()
    try:
        intent_ref = gateway.authorize(booking.total_price, booking.currency, booking.booking_code)
    except PaymentGatewayError as exc:
        logger.warning("Payment authorization failed for booking %s: %s", booking.booking_code, exc)
        Payment.objects.create(
            booking=booking,
            status=Payment.Status.FAILED,
            provider=gateway.provider,
            amount=booking.total_price,
            currency=booking.currency,
            metadata={"failure_reason": str(exc)},
        )
        decline_booking(booking.pk, reason="Payment authorization failed")
        booking.refresh_from_db()
        raise PaymentFailedError(f"Payment authorization failed: {exc}") from exc

    return Payment.objects.create(
        booking=booking,
        status=Payment.Status.PENDING,
        intent_ref=intent_ref,
        provider=gateway.provider,
        amount=booking.total_price,
        currency=booking.currency,
    )


def update_booking(booking_id, check_in: date | None = None, check_out: date | None = None, guests_count: int | None = None) -> BookingUpdateResult:
    """
    Change dates and/or guest count and re-price.

    The booking's own nights do not count as occupied, so shifting a stay
    into nights only it holds succeeds. The previous snapshot is kept.
    """

    property_id = _property_id_for(booking_id)
    gateway = get_payment_gateway()
    # Gateway results of a rolled-back attempt; a retry reuses them.
    settled: dict = {}

    def operation(uow, property_obj: Property) -> BookingUpdateResult:
        booking = _lock_booking(booking_id)
        if booking.status not in BookingStatus.occupying():
            raise InvalidTransitionError(
                booking.status, booking.status, f"A {booking.status} booking cannot be changed."
            )

        new_guests = booking.guests_count if guests_count is None else guests_count
        dates = validate_stay(
            property_obj,
            check_in or booking.check_in,
            check_out or booking.check_out,
            new_guests,
        )
        breakdown = price_available_stay(property_obj, dates, exclude_booking_id=booking.pk)

        previous = booking.price_snapshot
        snapshot = _save_snapshot(booking, breakdown, dates, new_guests)
        difference = price_difference(previous.total_price if previous else Decimal("0"), snapshot.total_price)

        booking.check_in = dates.start_date
        booking.check_out = dates.end_date
        booking.guests_count = new_guests
        booking.price_snapshot = snapshot
        booking.save(update_fields=["check_in", "check_out", "guests_count", "price_snapshot", "updated_at"])
        if difference:
            _sync_authorization(gateway, settled, booking)

        uow.record(BookingUpdated(
            aggregate_id=booking.pk,
            booking_id=booking.pk,
            property_id=property_obj.pk,
            status=booking.status,
            price_difference=difference,
        ))
        return BookingUpdateResult(booking=booking, previous_snapshot=previous, price_difference=difference)

    result = run_locked(property_id, operation, label="update_booking")
    logger.info(
        "Booking %s updated to %s - %s, price difference %s",
        result.booking.booking_code, result.booking.check_in, result.booking.check_out, result.price_difference,
    )
    return result


def _sync_authorization(gateway, settled: dict, booking: Booking) -> None:
    """
    Bring the payment in line with a repriced booking.

    A pending authorization is replaced by one for the new total. A
    captured payment is left alone and the gap is logged; a refused
    re-authorization keeps the previous one.
    """

    payment = Payment.objects.select_for_update().filter(booking=booking).first()
    if payment is None or payment.amount == booking.total_price:
        return

    if payment.status != Payment.Status.PENDING or not payment.intent_ref:
        logger.warning(
            "Booking %s repriced to %s %s, payment %s (%s) holds %s",
            booking.booking_code, booking.total_price, booking.currency,
            payment.pk, payment.status, payment.amount,
        )
        return

    if "authorize" not in settled:
        try:
            settled["authorize"] = gateway.authorize(booking.total_price, booking.currency, booking.booking_code)
        except PaymentGatewayError as exc:
            settled["authorize"] = None
            logger.warning(
                "Re-authorization of booking %s for %s failed, keeping %s: %s",
                booking.booking_code, booking.total_price, payment.intent_ref, exc,
            )
    intent_ref = settled["authorize"]
    if intent_ref is None:
        return

    payment.metadata["previous_intent_ref"] = payment.intent_ref
    payment.intent_ref = intent_ref
    payment.amount = booking.total_price
    payment.save(update_fields=["intent_ref", "amount", "metadata", "updated_at"])
    logger.info("Payment for booking %s re-authorized for %s", booking.booking_code, payment.amount)


# ============================================================================
# LIFECYCLE
# ============================================================================

def _property_id_for(booking_id) -> int:
    try:
        return Booking.objects.values_list("property_id", flat=True).get(pk=booking_id)
    except Booking.DoesNotExist:
        raise BookingNotFound(f"Booking {booking_id} not found")


def _lock_booking(booking_id) -> Booking:
    try:
        return Booking.objects.select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise BookingNotFound(f"Booking {booking_id} not found")


def _apply_status(booking: Booking, target, *, outcome=None, extra_fields=()) -> None:
    target = assert_transition(booking.status, target, outcome=outcome)
    previous = booking.status
    booking.status = target
    booking.status_changed_at = timezone.now()
    booking.save(update_fields=["status", "status_changed_at", "updated_at", *extra_fields])
    logger.info("Booking %s: %s -> %s", booking.booking_code, previous, target)


def accept_booking(booking_id) -> Booking:
    """Record the host's acceptance of a pending booking."""

    property_id = _property_id_for(booking_id)

    def operation(uow, property_obj: Property) -> Booking:
        booking = _lock_booking(booking_id)
        if booking.status != Booking.Status.PENDING:
            raise InvalidTransitionError(
                booking.status, booking.status, f"A {booking.status} booking cannot be accepted."
            )
        if booking.accepted_at is None:
            booking.accepted_at = timezone.now()
            booking.save(update_fields=["accepted_at", "updated_at"])
            uow.record(BookingAccepted(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                property_id=property_obj.pk,
                status=booking.status,
            ))
            logger.info("Booking %s accepted by host", booking.booking_code)
        return booking

    return run_locked(property_id, operation, label="accept_booking")


def confirm_payment(booking_id) -> Booking:
    """
    Capture the authorized payment and confirm the booking.

    A refused capture declines the booking (the decline is committed) and
    then raises ``PaymentFailedError``. The capture is sent at most once
    per call even when the unit of work is retried.
    """

    property_id = _property_id_for(booking_id)
    gateway = get_payment_gateway()
    # Gateway results of a rolled-back attempt; a retry reuses them.
    settled: dict = {}

    def operation(uow, property_obj: Property):
        booking = _lock_booking(booking_id)
        assert_transition(booking.status, Booking.Status.CONFIRMED)
        if not booking.is_accepted:
            raise BookingValidationError("Booking is awaiting host acceptance.", field="status")

        payment = Payment.objects.select_for_update().filter(booking=booking).first()
        if payment is None or not payment.intent_ref:
            raise BookingValidationError("Booking has no payment authorization.", field="payment")

        if "capture" not in settled:
            settled["capture"] = _capture(gateway, payment, booking)
        captured = settled["capture"]

        if not captured:
            payment.mark_failed("capture refused")
            booking.cancellation_reason = "Payment capture failed"
            _apply_status(booking, Booking.Status.DECLINED, extra_fields=["cancellation_reason"])
            uow.record(BookingDeclined(
                aggregate_id=booking.pk,
                booking_id=booking.pk,
                property_id=property_obj.pk,
                status=booking.status,
                reason=booking.cancellation_reason,
            ))
            return booking, False

        payment.mark_captured()
        _apply_status(booking, Booking.Status.CONFIRMED)
        uow.record(BookingConfirmed(
            aggregate_id=booking.pk,
            booking_id=booking.pk,
            property_id=property_obj.pk,
            status=booking.status,
            intent_ref=payment.intent_ref,
        ))
        return booking, True

    booking, captured = run_locked(property_id, operation, label="confirm_payment")
    if not captured:
        raise PaymentFailedError(f"Payment capture failed for booking {booking.booking_code}; booking declined.")
    return booking


def _capture(gateway, payment: Payment, booking: Booking) -> bool:
    try:
        return gateway.capture(payment.intent_ref, idempotency_key=f"{booking.booking_code}-capture")
    except PaymentGatewayError as exc:
        logger.warning("Capture of %s failed: %s", payment.intent_ref, exc)
        return False


def decline_booking(booking_id, reason: str = "") -> Booking:
    """Host rejection or payment failure: pending -> declined, nights released."""

    property_id = _property_id_for(booking_id)

    def operation(uow, property_obj: Property) -> Booking:
        booking = _lock_booking(booking_id)
        booking.cancellation_reason = reason or None
        _apply_status(booking, Booking.Status.DECLINED, extra_fields=["cancellation_reason"])
        uow.record(BookingDeclined(
            aggregate_id=booking.pk,
            booking_id=booking.pk,
            property_id=property_obj.pk,
            status=booking.status,
            reason=reason,
        ))
        return booking

    return run_locked(property_id, operation, label="decline_booking")


def resolve_cancellation_actor(booking: Booking, actor) -> CancellationActor:
    """Map the requesting principal to the policy actor."""

    if isinstance(actor, CancellationActor):
        return actor
    user_id = getattr(actor, "pk", None)
    if user_id is not None and user_id == booking.property.owner_id:
        return CancellationActor.HOST
    if getattr(actor, "is_staff", False) or getattr(actor, "is_superuser", False):
        return CancellationActor.ADMIN
    if user_id is not None and user_id == booking.guest_id:
        return CancellationActor.GUEST
    raise BookingPermissionDenied("Only the guest, the host or an administrator can cancel this booking.")


def cancel_booking(booking_id, actor, reason: str = "", *, now=None) -> CancellationResult:
    """
    Cancel through the refund policy.

    When the payment was captured the refund is executed on the gateway
    before the terminal status is committed; a refused refund aborts the
    cancellation. A retried unit of work never refunds twice.
    """

    property_id = _property_id_for(booking_id)
    gateway = get_payment_gateway()
    now = now or timezone.now()
    # Gateway results of a rolled-back attempt; a retry reuses them.
    settled: dict = {}

    def operation(uow, property_obj: Property) -> CancellationResult:
        booking = _lock_booking(booking_id)
        policy_actor = resolve_cancellation_actor(booking, actor)
        outcome = evaluate_cancellation(booking, policy_actor, now)
        assert_transition(booking.status, outcome.new_status, outcome=outcome)

        refunded = Decimal("0.00")
        payment = Payment.objects.select_for_update().filter(booking=booking).first()
        if payment is not None and payment.is_captured and outcome.refund_amount > 0:
            if "refund" not in settled:
                settled["refund"] = _refund(gateway, payment, booking, outcome.refund_amount)
            refunded = settled["refund"]
            payment.mark_refunded(refunded)

        booking.refund_amount = refunded
        booking.cancelled_at = now
        booking.cancellation_reason = reason or None
        _apply_status(
            booking,
            outcome.new_status,
            outcome=outcome,
            extra_fields=["refund_amount", "cancelled_at", "cancellation_reason"],
        )
        uow.record(BookingCancelled(
            aggregate_id=booking.pk,
            booking_id=booking.pk,
            property_id=property_obj.pk,
            status=booking.status,
            refund_amount=refunded,
            reason=reason,
        ))
        return CancellationResult(booking=booking, outcome=outcome, refunded_amount=refunded)

    result = run_locked(property_id, operation, label="cancel_booking")
    logger.info(
        "Booking %s cancelled (%s), refund %s",
        result.booking.booking_code, result.booking.status, result.refunded_amount,
    )
    return result


def _refund(gateway, payment: Payment, booking: Booking, amount: Decimal) -> Decimal:
    try:
        ok = gateway.refund(payment.intent_ref, amount, idempotency_key=f"{booking.booking_code}-refund")
    except PaymentGatewayError as exc:
        raise ExternalCollaboratorError(f"Refund failed: {exc}") from exc
    if not ok:
        raise ExternalCollaboratorError("Refund was refused by the payment gateway.")
    return amount


def complete_booking(booking_id, *, today: date | None = None) -> Booking:
    """confirmed -> completed once the checkout date has passed."""

    property_id = _property_id_for(booking_id)
    today = today or timezone.localdate()

    def operation(uow, property_obj: Property) -> Booking:
        booking = _lock_booking(booking_id)
        assert_transition(booking.status, Booking.Status.COMPLETED)
        if booking.check_out > today:
            raise BookingValidationError("Stay has not ended yet.", field="check_out")
        _apply_status(booking, Booking.Status.COMPLETED)
        uow.record(BookingCompleted(
            aggregate_id=booking.pk,
            booking_id=booking.pk,
            property_id=property_obj.pk,
            status=booking.status,
        ))
        return booking

    return run_locked(property_id, operation, label="complete_booking")


def expire_booking(booking_id, *, now=None) -> bool:
    """Decline a pending hold whose deadline has passed. Returns True if it expired."""

    property_id = _property_id_for(booking_id)
    now = now or timezone.now()

    def operation(uow, property_obj: Property) -> bool:
        booking = _lock_booking(booking_id)
        if not booking.should_expire(now):
            return False
        booking.cancellation_reason = "Hold expired"
        _apply_status(booking, Booking.Status.DECLINED, extra_fields=["cancellation_reason"])
        uow.record(BookingDeclined(
            aggregate_id=booking.pk,
            booking_id=booking.pk,
            property_id=property_obj.pk,
            status=booking.status,
            reason=booking.cancellation_reason,
        ))
        return True

    return run_locked(property_id, operation, label="expire_booking")


# ============================================================================
# QUERIES
# ============================================================================

def get_booking(booking_id) -> Booking:
    try:
        return Booking.objects.select_related("property", "price_snapshot").get(pk=booking_id)
    except Booking.DoesNotExist:
        raise BookingNotFound(f"Booking {booking_id} not found")


def list_bookings_for_user(user, status: str | None = None) -> QuerySet:
    """Bookings the user made as a guest or received as a host, newest first."""

    qs = Booking.objects.select_related("property", "price_snapshot").filter(
        Q(guest=user) | Q(property__owner=user)
    )
    if status:
        if status not in BookingStatus.values:
            raise BookingValidationError(f"Unknown status: {status}", field="status")
        qs = qs.filter(status=status)
    return qs.order_by("-created_at")

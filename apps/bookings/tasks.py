"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore
from django.utils import timezone  # type: ignore

from .exceptions import BookingError
from .models import Booking

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (запускаются автоматически через Celery Beat)
# ============================================================================

@shared_task(name="bookings.expire_pending_bookings")
def expire_pending_bookings() -> dict[str, int]:
    """
    Decline pending holds whose ``expires_at`` has passed.

    Runs every minute via Celery Beat.

    Returns:
        dict: {"expired": number of declined holds}
    """
    from .services import expire_booking

    now = timezone.now()
    expired_count = 0

    candidate_ids = Booking.objects.filter(
        status=Booking.Status.PENDING,
        expires_at__lte=now,
    ).values_list("id", flat=True)

    for booking_id in list(candidate_ids):
        try:
            if expire_booking(booking_id, now=now):
                expired_count += 1
        except BookingError as e:
            logger.error("Error expiring booking %s: %s", booking_id, e, exc_info=True)

    if expired_count > 0:
        logger.info("Expired %d pending bookings", expired_count)

    return {"expired": expired_count}


@shared_task(name="bookings.complete_finished_bookings")
def complete_finished_bookings() -> dict[str, int]:
    """
    Move confirmed bookings whose checkout date has passed to COMPLETED.

    Runs every hour.

    Returns:
        dict: {"completed": number of completed bookings}
    """
    from .services import complete_booking

    today = timezone.localdate()
    completed_count = 0

    candidate_ids = Booking.objects.filter(
        status=Booking.Status.CONFIRMED,
        check_out__lte=today,
    ).values_list("id", flat=True)

    for booking_id in list(candidate_ids):
        try:
            complete_booking(booking_id, today=today)
            completed_count += 1
        except BookingError as e:
            logger.error("Error completing booking %s: %s", booking_id, e, exc_info=True)

    if completed_count > 0:
        logger.info("Completed %d bookings", completed_count)

    return {"completed": completed_count}


# ============================================================================
# NOTIFICATION TASKS
# ============================================================================

@shared_task(name="bookings.notify_booking_status_changed")
def notify_booking_status_changed(booking_id: int) -> bool:
    """Inform guest and host about the booking's current status."""
    try:
        booking = Booking.objects.select_related(
            "guest", "property", "property__owner", "price_snapshot"
        ).get(id=booking_id)
    except Booking.DoesNotExist:
        logger.error("Booking %s not found for status notification", booking_id)
        return False

    from apps.notifications.services import notify_booking_status_change

    try:
        notify_booking_status_change(booking)
    except Exception as e:
        logger.error("Status notification for booking %s failed: %s", booking_id, e, exc_info=True)
        return False
    return True

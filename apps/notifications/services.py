"""Notification delivery for booking status changes.

Notifications are fire-and-forget: every function here reports failure
through its return value and the log, never by raising.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.utils.html import strip_tags  # type: ignore

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking

logger = logging.getLogger(__name__)


STATUS_SUBJECTS = {
    "pending": "Бронирование #{code} ожидает подтверждения",
    "confirmed": "Бронирование #{code} подтверждено!",
    "declined": "Бронирование #{code} отклонено",
    "cancelled_by_guest": "Бронирование #{code} отменено гостем",
    "cancelled_by_host": "Бронирование #{code} отменено владельцем",
    "completed": "Спасибо за проживание! Бронирование #{code} завершено",
}


def send_email_notification(recipient_email: str, subject: str, html_message: str) -> bool:
    """
    Send one email.

    Returns:
        bool: True если письмо отправлено успешно
    """
    if not recipient_email:
        logger.info("Skipping email without recipient: %s", subject)
        return False

    try:
        send_mail(
            subject=subject,
            message=strip_tags(html_message),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            html_message=html_message,
            fail_silently=False,
        )
    except Exception as e:
        logger.error("Failed to send email to %s: %s", recipient_email, e, exc_info=True)
        return False

    logger.info("Email sent to %s: %s", recipient_email, subject)
    return True


def _status_message(booking: "Booking") -> str:
    lines = [
        f"<li><strong>Код брони:</strong> {booking.booking_code}</li>",
        f"<li><strong>Объект:</strong> {booking.property.title}</li>",
        f"<li><strong>Заезд:</strong> {booking.check_in.strftime('%d.%m.%Y')}</li>",
        f"<li><strong>Выезд:</strong> {booking.check_out.strftime('%d.%m.%Y')}</li>",
        f"<li><strong>Итого:</strong> {booking.total_price} {booking.currency}</li>",
    ]
    if booking.refund_amount is not None:
        lines.append(f"<li><strong>Возврат:</strong> {booking.refund_amount} {booking.currency}</li>")
    if booking.cancellation_reason:
        lines.append(f"<li><strong>Причина:</strong> {booking.cancellation_reason}</li>")

    return (
        "<html><body>"
        f"<p>Статус бронирования: {booking.get_status_display()}.</p>"
        f"<ul>{''.join(lines)}</ul>"
        "</body></html>"
    )


def notify_booking_status_change(booking: "Booking") -> int:
    """Email the guest and the host about the booking's current status.

    Returns the number of messages delivered.
    """
    subject = STATUS_SUBJECTS.get(str(booking.status), "Бронирование #{code} обновлено").format(
        code=booking.booking_code
    )
    html_message = _status_message(booking)

    recipients = list(dict.fromkeys([booking.guest.email, booking.property.owner.email]))
    delivered = sum(1 for email in recipients if send_email_notification(email, subject, html_message))
    logger.info(
        "[NOTIFICATION] Booking %s (%s): %d of %d messages delivered",
        booking.booking_code, booking.status, delivered, len(recipients),
    )
    return delivered

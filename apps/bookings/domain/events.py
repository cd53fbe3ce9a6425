"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from shared.domain.base import DomainEvent


@dataclass
class BookingEvent(DomainEvent):
    """Common payload: which booking, on which property, in which status now."""

    booking_id: int | None = None
    property_id: int | None = None
    status: str = ""

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload.update({
            'booking_id': self.booking_id,
            'property_id': self.property_id,
            'status': self.status,
        })
        return payload


@dataclass
class BookingCreated(BookingEvent):
    """
    Event: A new hold was placed

    Triggers:
    - Availability cache invalidation
    - Guest and host notification
    """
    check_in: date | None = None
    check_out: date | None = None
    total_price: Decimal | None = None


@dataclass
class BookingUpdated(BookingEvent):
    """Event: Dates or guest count changed and the booking was re-priced"""
    price_difference: Decimal | None = None


@dataclass
class BookingAccepted(BookingEvent):
    """Event: The host accepted a pending booking"""


@dataclass
class BookingConfirmed(BookingEvent):
    """Event: Payment captured, booking confirmed"""
    intent_ref: str = ""


@dataclass
class BookingDeclined(BookingEvent):
    """Event: Host rejection, payment failure or hold expiry released the nights"""
    reason: str = ""


@dataclass
class BookingCancelled(BookingEvent):
    """Event: Guest or host cancelled; nights are released"""
    refund_amount: Decimal | None = None
    reason: str = ""


@dataclass
class BookingCompleted(BookingEvent):
    """Event: Stay finished"""

"""Error taxonomy of the booking engine."""

from __future__ import annotations

from datetime import date
from typing import Iterable, List


class BookingError(Exception):
    """Base class for booking engine errors."""

    code = "booking_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.message}


class BookingValidationError(BookingError):
    """Malformed or out-of-policy input. Never retried."""

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.field:
            payload["field"] = self.field
        return payload


class BookingConflictError(BookingError):
    """The requested nights are already occupied. Carries those nights."""

    code = "conflict"

    def __init__(self, conflicting_dates: Iterable[date], message: str = "") -> None:
        self.conflicting_dates: List[date] = sorted(set(conflicting_dates))
        super().__init__(
            message
            or "Property is not available for: "
            + ", ".join(night.isoformat() for night in self.conflicting_dates)
        )

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["conflicting_dates"] = [night.isoformat() for night in self.conflicting_dates]
        return payload


class TransientStoreError(BookingError):
    """Lock or serialization failure that outlived the retry budget."""

    code = "transient_store_error"
    retry_after = 1


class InvalidTransitionError(BookingError):
    """Lifecycle transition from a terminal or incompatible state."""

    code = "invalid_transition"

    def __init__(self, current: str, target: str, message: str = "") -> None:
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move booking from {current} to {target}.")

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload.update({"current_status": self.current, "target_status": self.target})
        return payload


class ExternalCollaboratorError(BookingError):
    """Payment gateway or notification failure."""

    code = "external_error"


class PaymentFailedError(ExternalCollaboratorError):
    """Authorization or capture was refused; reported to callers like a validation error."""

    code = "payment_failed"


class BookingNotFound(BookingError):
    code = "not_found"


class BookingPermissionDenied(BookingError):
    """The principal has no stake in the booking."""

    code = "forbidden"

"""Maps booking domain errors to HTTP responses."""

from __future__ import annotations

import logging

from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler as drf_exception_handler  # type: ignore

from .exceptions import (
    BookingConflictError,
    BookingError,
    BookingNotFound,
    BookingPermissionDenied,
    BookingValidationError,
    ExternalCollaboratorError,
    InvalidTransitionError,
    PaymentFailedError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)

# Order matters: PaymentFailedError is a subclass of ExternalCollaboratorError.
STATUS_BY_ERROR = (
    (BookingValidationError, status.HTTP_400_BAD_REQUEST),
    (PaymentFailedError, status.HTTP_400_BAD_REQUEST),
    (BookingConflictError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (TransientStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ExternalCollaboratorError, status.HTTP_502_BAD_GATEWAY),
    (BookingNotFound, status.HTTP_404_NOT_FOUND),
    (BookingPermissionDenied, status.HTTP_403_FORBIDDEN),
)


def status_for(exc: BookingError) -> int:
    for error_class, http_status in STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return http_status
    return status.HTTP_400_BAD_REQUEST


def booking_exception_handler(exc, context):  # type: ignore
    if not isinstance(exc, BookingError):
        return drf_exception_handler(exc, context)

    http_status = status_for(exc)
    if http_status >= 500:
        logger.warning("Booking request failed: %s", exc)

    response = Response(exc.to_dict(), status=http_status)
    if isinstance(exc, TransientStoreError):
        response["Retry-After"] = str(exc.retry_after)
    return response

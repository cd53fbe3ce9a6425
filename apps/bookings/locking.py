"""
Per-property serialization of booking writes.

Every write that can change the occupancy of a property runs as one
unit of work that holds, in order:

1. a process-local lock dedicated to the property (threads of one worker),
2. the ``SELECT ... FOR UPDATE`` row lock on the property (all workers),

and performs its conflict check and its writes inside the same database
transaction. Different properties never share a lock. Lock waits are
bounded; lock timeouts and serialization failures are retried with
exponential backoff and then surface as ``TransientStoreError``.
"""

from __future__ import annotations

import logging
import random
import threading
import time
import weakref
from contextlib import contextmanager
from typing import Callable, TypeVar

from django.conf import settings  # type: ignore
from django.db import OperationalError, transaction  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore

from apps.properties.models import Property
from shared.application.uow import DjangoUnitOfWork

from .exceptions import BookingNotFound, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_registry_lock = threading.Lock()
# An entry lives only while some caller holds its lock object.
_property_locks: weakref.WeakValueDictionary[int, threading.Lock] = weakref.WeakValueDictionary()


class LockTimeout(Exception):
    """The process-local property lock was not acquired in time."""


def _lock_timeout() -> float:
    return float(getattr(settings, "BOOKING_LOCK_TIMEOUT", 5))


def _lock_for(property_id) -> threading.Lock:
    key = int(property_id)
    with _registry_lock:
        lock = _property_locks.get(key)
        if lock is None:
            lock = _property_locks[key] = threading.Lock()
        return lock


@contextmanager
def property_lock(property_id, timeout: float | None = None):
    lock = _lock_for(property_id)
    if not lock.acquire(timeout=_lock_timeout() if timeout is None else timeout):
        raise LockTimeout(f"Timed out waiting for property {property_id}")
    try:
        yield
    finally:
        lock.release()


def lock_property_row(property_id) -> Property:
    """Take the row lock on the property for the rest of the transaction."""

    connection = transaction.get_connection()
    if connection.vendor == "postgresql":
        with connection.cursor() as cursor:
            cursor.execute(f"SET LOCAL lock_timeout = '{int(_lock_timeout() * 1000)}ms'")

    queryset = Property.objects.all()
    try:
        queryset = queryset.select_for_update()
    except NotSupportedError:
        pass

    try:
        return queryset.get(pk=property_id)
    except Property.DoesNotExist:
        raise BookingNotFound(f"Property {property_id} not found")


def backoff_delay(attempt: int) -> float:
    """Exponential backoff with jitter."""
    base = float(getattr(settings, "BOOKING_LOCK_BACKOFF", 0.05)) * (2 ** (attempt - 1))
    return base + random.uniform(0, base / 2)


def run_locked(property_id, operation: Callable[[DjangoUnitOfWork, Property], T], *, label: str = "booking write") -> T:
    """
    Run ``operation(uow, property)`` as the atomic unit for ``property_id``.

    Any exception raised by ``operation`` rolls the whole unit back.
    Only transient lock and serialization failures are retried.
    """

    attempts = int(getattr(settings, "BOOKING_LOCK_RETRIES", 3)) + 1

    for attempt in range(1, attempts + 1):
        try:
            with property_lock(property_id):
                with DjangoUnitOfWork() as uow:
                    property_obj = lock_property_row(property_id)
                    return operation(uow, property_obj)
        except (OperationalError, LockTimeout) as exc:
            if attempt >= attempts:
                logger.error(
                    "%s on property %s failed after %d attempts: %s",
                    label, property_id, attempt, exc,
                )
                raise TransientStoreError(
                    f"Property {property_id} is busy, please retry."
                ) from exc
            delay = backoff_delay(attempt)
            logger.warning(
                "%s on property %s hit a transient failure (attempt %d/%d), retrying in %.3fs: %s",
                label, property_id, attempt, attempts, delay, exc,
            )
            time.sleep(delay)

    raise TransientStoreError(f"Property {property_id} is busy, please retry.")  # pragma: no cover

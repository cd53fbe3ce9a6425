"""Read-through cache for pre-booking availability answers.

Only the public availability check reads from here. Reservation writes
always go to the calendar store directly.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, List, TypeVar

from django.conf import settings
from django.core.cache import cache
from django.db import transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _prefix() -> str:
    return getattr(settings, "AVAILABILITY_CACHE_PREFIX", "availability")


def _timeout() -> int:
    return getattr(settings, "AVAILABILITY_CACHE_TIMEOUT", 60)


def _build_cache_key(property_id, start: date, end: date) -> str:
    return f"{_prefix()}:{property_id}:{start.isoformat()}:{end.isoformat()}"


def _keys_storage_key(property_id) -> str:
    return f"{_prefix()}:{property_id}:keys"


def _register_cache_key(property_id, key: str) -> None:
    storage_key = _keys_storage_key(property_id)
    keys: List[str] | None = cache.get(storage_key)
    if keys is None:
        cache.set(storage_key, [key], None)
        return
    if key in keys:
        return
    keys.append(key)
    cache.set(storage_key, keys, None)


def get_cached_availability(property_id, start: date, end: date, builder: Callable[[], T]) -> T:
    """Return the cached availability window, building and storing it on a miss."""
    key = _build_cache_key(property_id, start, end)
    cached = cache.get(key)
    if cached is not None:
        return cached

    result = builder()
    cache.set(key, result, _timeout())
    _register_cache_key(property_id, key)
    return result


def invalidate_availability(property_id) -> None:
    """Drop every cached window of a property. Best-effort: TTL still bounds staleness."""
    storage_key = _keys_storage_key(property_id)
    try:
        keys: List[str] | None = cache.get(storage_key)
        if keys:
            cache.delete_many(keys)
        cache.delete(storage_key)
    except Exception:
        logger.warning("Availability cache invalidation failed for property %s", property_id, exc_info=True)
        return
    logger.debug("Invalidated %d cached availability windows for property %s", len(keys or []), property_id)


def invalidate_availability_on_commit(property_id) -> None:
    transaction.on_commit(lambda: invalidate_availability(property_id))


__all__ = [
    "get_cached_availability",
    "invalidate_availability",
    "invalidate_availability_on_commit",
]

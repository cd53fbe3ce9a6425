"""Concurrent reservations on one property never overlap."""

import random
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from django.db import connection

from apps.bookings import services
from apps.bookings.exceptions import BookingConflictError, BookingError
from apps.bookings.models import Booking

pytestmark = pytest.mark.django_db(transaction=True)


def _attempt(property_id, guest, check_in, check_out):
    """Returns ``(outcome, conflicting_dates)``."""
    try:
        services.create_booking(property_id, guest, check_in, check_out, 1)
        return "ok", []
    except BookingConflictError as exc:
        return "conflict", exc.conflicting_dates
    except BookingError as exc:
        return type(exc).__name__, []
    finally:
        connection.close()


def test_exactly_one_of_many_identical_requests_wins(property_obj, make_user, stay):
    guests = [make_user(f"racer{i}") for i in range(8)]
    check_in, check_out = stay

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda g: _attempt(property_obj.pk, g, check_in, check_out), guests))

    outcomes = [outcome for outcome, _dates in results]
    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 7
    every_night = [check_in + timedelta(days=i) for i in range(4)]
    for outcome, dates in results:
        if outcome == "conflict":
            assert dates == every_night
    assert Booking.objects.filter(status__in=Booking.Status.occupying()).count() == 1


def test_random_requests_keep_occupied_nights_disjoint(property_obj, make_user, today):
    rng = random.Random(20301)
    guests = [make_user(f"stress{i}") for i in range(4)]
    requests = []
    for i in range(24):
        check_in = today + timedelta(days=rng.randint(1, 20))
        requests.append((guests[i % len(guests)], check_in, check_in + timedelta(days=rng.randint(1, 4))))

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda r: _attempt(property_obj.pk, *r), requests))

    outcomes = [outcome for outcome, _dates in results]
    assert set(outcomes) <= {"ok", "conflict"}

    seen = set()
    for booking in Booking.objects.filter(status__in=Booking.Status.occupying()):
        nights = set(booking.dates)
        assert not nights & seen
        seen |= nights
    assert outcomes.count("ok") == Booking.objects.count()

    for (guest, check_in, check_out), (outcome, dates) in zip(requests, results):
        if outcome == "conflict":
            requested = {check_in + timedelta(days=i) for i in range((check_out - check_in).days)}
            assert dates and set(dates) <= requested & seen


def test_different_properties_do_not_block_each_other(make_property, make_user, stay):
    properties = [make_property(title=f"Объект {i}") for i in range(4)]
    guest = make_user("traveller")
    check_in, check_out = stay

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda p: _attempt(p.pk, guest, check_in, check_out), properties))

    assert results == [("ok", [])] * 4

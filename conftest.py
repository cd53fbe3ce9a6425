"""Shared pytest fixtures."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone

from apps.finances.tests.fakes import FakePaymentGateway
from apps.properties.models import Property


@pytest.fixture(autouse=True)
def fake_gateway():
    FakePaymentGateway.reset()
    yield FakePaymentGateway
    FakePaymentGateway.reset()


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def make_user(db):
    def factory(username: str, **extra):
        return get_user_model().objects.create_user(
            username=username,
            email=extra.pop("email", f"{username}@example.com"),
            password="StrongPass123",
            **extra,
        )

    return factory


@pytest.fixture
def owner(make_user):
    return make_user("owner")


@pytest.fixture
def guest(make_user):
    return make_user("guest")


@pytest.fixture
def make_property(db, owner):
    def factory(**overrides):
        fields = {
            "owner": owner,
            "title": "Квартира у парка",
            "base_price": Decimal("100.00"),
            "cleaning_fee": Decimal("50.00"),
            "service_fee": Decimal("20.00"),
            "currency": "KZT",
            "max_guests": 4,
            "min_nights": 1,
            "instant_booking": True,
        }
        fields.update(overrides)
        return Property.objects.create(**fields)

    return factory


@pytest.fixture
def property_obj(make_property):
    return make_property()


@pytest.fixture
def stay(today):
    """Four nights starting in 30 days."""
    check_in = today + timedelta(days=30)
    return check_in, check_in + timedelta(days=4)

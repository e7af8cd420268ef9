"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import Callable
from unittest.mock import MagicMock

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from bookings import services as booking_services
from bookings.models import Booking
from payments import services as payment_services
from payments.models import OwnerPayoutAccount
from products.models import Product

User = get_user_model()


def future(days: int) -> date:
    return timezone.now().date() + timedelta(days=days)


def _create_user(*, username: str, **extra) -> User:
    return User.objects.create_user(
        username=username,
        password="testpass",
        email=f"{username}@example.com",
        **extra,
    )


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()


@pytest.fixture
def owner_user():
    return _create_user(username="owner")


@pytest.fixture
def renter_user():
    return _create_user(username="renter", can_list=False)


@pytest.fixture
def other_user():
    return _create_user(username="other")


@pytest.fixture
def staff_user():
    return _create_user(username="ops", is_staff=True)


@pytest.fixture
def payout_account(owner_user):
    return OwnerPayoutAccount.objects.create(
        user=owner_user,
        stripe_account_id="acct_test_owner",
        payouts_enabled=True,
        charges_enabled=True,
        is_fully_onboarded=True,
        last_synced_at=timezone.now(),
    )


@pytest.fixture
def product(owner_user):
    return Product.objects.create(
        owner=owner_user,
        title="Pro Camera Kit",
        description="Mirrorless camera with two lenses.",
        daily_price=Decimal("100.00"),
        total_stock_units=1,
    )


@pytest.fixture
def booking_factory(product, renter_user) -> Callable[..., Booking]:
    def _create(*, days=None, renter=None, target=None, status=None) -> Booking:
        booking = booking_services.create_booking(
            product_id=(target or product).id,
            renter=renter or renter_user,
            days=days or [future(3), future(4)],
        )
        if status is not None and status != booking.status:
            Booking.objects.filter(pk=booking.pk).update(status=status)
            booking.refresh_from_db()
        return booking

    return _create


@pytest.fixture
def stripe_mock(monkeypatch):
    """Replace every Stripe call made by payments.stripe_api with mocks."""
    from payments import stripe_api

    counter = {"intent": 0}

    def _create_intent(**kwargs):
        counter["intent"] += 1
        return {
            "id": f"pi_test_{counter['intent']}",
            "client_secret": f"pi_test_{counter['intent']}_secret",
            "status": "requires_payment_method",
            "amount": kwargs["amount"],
        }

    def _retrieve_intent(intent_id):
        return {"id": intent_id, "client_secret": f"{intent_id}_secret", "status": "succeeded"}

    mocks = SimpleNamespace(
        intent_create=MagicMock(side_effect=_create_intent),
        intent_retrieve=MagicMock(side_effect=_retrieve_intent),
        refund_create=MagicMock(return_value={"id": "re_test_1"}),
        transfer_create=MagicMock(return_value={"id": "tr_test_1"}),
    )
    monkeypatch.setattr(stripe_api.stripe.PaymentIntent, "create", mocks.intent_create)
    monkeypatch.setattr(stripe_api.stripe.PaymentIntent, "retrieve", mocks.intent_retrieve)
    monkeypatch.setattr(stripe_api.stripe.Refund, "create", mocks.refund_create)
    monkeypatch.setattr(stripe_api.stripe.Transfer, "create", mocks.transfer_create)
    return mocks


@pytest.fixture
def paid_booking_factory(booking_factory, stripe_mock):
    """Create a booking whose renter charge has already succeeded."""

    def _create(**kwargs) -> Booking:
        booking = booking_factory(**kwargs)
        settlement = payment_services.create_payment(booking.id, booking.renter)
        payment_services.confirm_payment(
            settlement.payment_intent_id,
            intent={"id": settlement.payment_intent_id, "status": "succeeded"},
        )
        booking.refresh_from_db()
        return booking

    return _create

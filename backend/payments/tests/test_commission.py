from __future__ import annotations

from decimal import Decimal

import pytest

from core import errors
from payments import services
from payments.commission import (
    CommissionPolicyProvider,
    compute_commission,
    default_provider,
    publish_policy,
    split_cancellation_charge,
)
from payments.models import CommissionPolicy, CommissionType, Settlement


def _policy(commission_type: str, value: str) -> CommissionPolicy:
    if commission_type == CommissionType.FIXED:
        return CommissionPolicy(commission_type=commission_type, fixed_amount=Decimal(value))
    return CommissionPolicy(commission_type=commission_type, percentage=Decimal(value))


@pytest.mark.parametrize(
    "total,commission_type,value,commission,payout",
    [
        ("300.00", CommissionType.PERCENTAGE, "10", "30.00", "270.00"),
        ("33.33", CommissionType.PERCENTAGE, "12.5", "4.17", "29.16"),
        ("100.00", CommissionType.FIXED, "15", "15.00", "85.00"),
        ("10.00", CommissionType.FIXED, "25", "10.00", "0.00"),
        ("100.00", CommissionType.PERCENTAGE, "0", "0.00", "100.00"),
    ],
)
def test_commission_split_always_adds_up(total, commission_type, value, commission, payout):
    snapshot = compute_commission(Decimal(total), _policy(commission_type, value))

    assert snapshot.commission_amount == Decimal(commission)
    assert snapshot.owner_payout_amount == Decimal(payout)
    assert snapshot.commission_amount + snapshot.owner_payout_amount == Decimal(total)
    assert snapshot.commission_type == commission_type


@pytest.mark.django_db
def test_provider_falls_back_to_default_percentage(settings):
    settings.DEFAULT_COMMISSION_PERCENTAGE = Decimal("10")

    policy = CommissionPolicyProvider().current()

    assert policy.pk is None
    assert policy.commission_type == CommissionType.PERCENTAGE
    assert policy.value == Decimal("10")


@pytest.mark.django_db
def test_published_policy_becomes_current(staff_user):
    publish_policy(commission_type=CommissionType.PERCENTAGE, value="12")
    latest = publish_policy(commission_type=CommissionType.FIXED, value="5", created_by=staff_user)

    current = default_provider.current()

    assert current.pk == latest.pk
    assert current.value == Decimal("5.00")
    assert CommissionPolicy.objects.count() == 2


@pytest.mark.django_db
def test_editing_a_policy_stores_a_new_version():
    policy = publish_policy(commission_type=CommissionType.PERCENTAGE, value="10")
    original_pk = policy.pk

    policy.percentage = Decimal("20.00")
    policy.save()

    assert policy.pk != original_pk
    assert CommissionPolicy.objects.get(pk=original_pk).percentage == Decimal("10.00")


@pytest.mark.django_db
@pytest.mark.parametrize("commission_type,value", [("flat", "5"), ("percentage", "101"), ("fixed", "-1"), ("fixed", "abc")])
def test_publish_policy_validates_input(commission_type, value):
    with pytest.raises(errors.ValidationError):
        publish_policy(commission_type=commission_type, value=value)


@pytest.mark.django_db
def test_settlement_keeps_its_snapshot_after_policy_change(booking_factory, renter_user, stripe_mock):
    publish_policy(commission_type=CommissionType.PERCENTAGE, value="10")
    booking = booking_factory()
    settlement = services.create_payment(booking.id, renter_user)
    publish_policy(commission_type=CommissionType.PERCENTAGE, value="30")

    retried = services.create_payment(booking.id, renter_user)

    assert retried.pk == settlement.pk
    assert retried.commission_amount == Decimal("20.00")
    assert retried.owner_payout_amount == Decimal("180.00")
    assert retried.commission_value == Decimal("10.00")


@pytest.mark.django_db
def test_settlement_snapshot_fields_are_immutable(booking_factory, renter_user, stripe_mock):
    booking = booking_factory()
    settlement = Settlement.objects.get(pk=services.create_payment(booking.id, renter_user).pk)

    settlement.commission_amount = Decimal("0.00")
    with pytest.raises(errors.StateError):
        settlement.save()

    settlement.refresh_from_db()
    settlement.payout_error = "note"
    settlement.save(update_fields=["payout_error"])


@pytest.mark.django_db
@pytest.mark.parametrize(
    "commission_type,value,charge,platform,owner",
    [
        (CommissionType.PERCENTAGE, "10.00", "20.00", "2.00", "18.00"),
        (CommissionType.FIXED, "15.00", "40.00", "15.00", "25.00"),
        (CommissionType.FIXED, "15.00", "5.00", "5.00", "0.00"),
    ],
)
def test_cancellation_charge_uses_the_settlement_snapshot(
    commission_type, value, charge, platform, owner
):
    publish_policy(commission_type=CommissionType.PERCENTAGE, value="50")
    settlement = Settlement(commission_type=commission_type, commission_value=Decimal(value))

    split = split_cancellation_charge(Decimal(charge), settlement)

    assert split.commission_amount == Decimal(platform)
    assert split.owner_payout_amount == Decimal(owner)

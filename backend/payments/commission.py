"""Commission policy lookup and the commission split taken at payment time."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings

from core import errors

from .models import CommissionPolicy, CommissionType

logger = logging.getLogger(__name__)

_ZERO = Decimal("0.00")
_CENT = Decimal("0.01")


def _quantize(value: Decimal) -> Decimal:
    """Round a Decimal value to cents using HALF_UP."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CommissionSnapshot:
    """Commission values copied onto a settlement; never recomputed."""

    commission_type: str
    commission_value: Decimal
    commission_amount: Decimal
    owner_payout_amount: Decimal
    total_amount: Decimal
    policy_id: int | None = None


class CommissionPolicyProvider:
    """Reads the current commission policy version from the database."""

    def current(self) -> CommissionPolicy:
        policy = CommissionPolicy.objects.filter(is_active=True).order_by("-created_at", "-id").first()
        if policy is not None:
            return policy
        return CommissionPolicy(
            commission_type=CommissionType.PERCENTAGE,
            percentage=Decimal(settings.DEFAULT_COMMISSION_PERCENTAGE),
            fixed_amount=_ZERO,
        )


default_provider = CommissionPolicyProvider()


def publish_policy(*, commission_type: str, value, created_by=None) -> CommissionPolicy:
    """Store a new policy version; existing settlements keep their snapshot."""
    if commission_type not in CommissionType.values:
        raise errors.ValidationError("commission_type must be 'fixed' or 'percentage'.")
    try:
        amount = _quantize(Decimal(str(value)))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise errors.ValidationError("Commission value must be a number.") from exc
    if amount < _ZERO:
        raise errors.ValidationError("Commission value cannot be negative.")
    if commission_type == CommissionType.PERCENTAGE and amount > Decimal("100"):
        raise errors.ValidationError("Commission percentage cannot exceed 100.")

    policy = CommissionPolicy.objects.create(
        commission_type=commission_type,
        fixed_amount=amount if commission_type == CommissionType.FIXED else _ZERO,
        percentage=amount if commission_type == CommissionType.PERCENTAGE else _ZERO,
        is_active=True,
        created_by=created_by,
    )
    logger.info(
        "payments: commission policy published",
        extra={"policy_id": policy.id, "commission_type": commission_type, "value": str(amount)},
    )
    return policy


def compute_commission(total_amount: Decimal, policy: CommissionPolicy) -> CommissionSnapshot:
    """Split ``total_amount`` into platform commission and owner payout.

    The commission is clamped to ``[0, total]`` and the owner share is the
    exact remainder, so both parts always add back up to the total.
    """
    total = _quantize(Decimal(total_amount))
    if policy.commission_type == CommissionType.FIXED:
        value = _quantize(Decimal(policy.fixed_amount or 0))
        commission = value
    else:
        value = _quantize(Decimal(policy.percentage or 0))
        commission = _quantize(total * value / Decimal("100"))

    commission = min(max(commission, _ZERO), total)
    return CommissionSnapshot(
        commission_type=policy.commission_type,
        commission_value=value,
        commission_amount=commission,
        owner_payout_amount=total - commission,
        total_amount=total,
        policy_id=policy.pk,
    )


def split_cancellation_charge(charge_amount: Decimal, settlement) -> CommissionSnapshot:
    """Split a retained cancellation charge with the settlement's own commission snapshot."""
    policy = CommissionPolicy(
        commission_type=settlement.commission_type,
        fixed_amount=settlement.commission_value if settlement.commission_type == CommissionType.FIXED else _ZERO,
        percentage=settlement.commission_value if settlement.commission_type == CommissionType.PERCENTAGE else _ZERO,
    )
    return compute_commission(charge_amount, policy)

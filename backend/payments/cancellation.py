"""Cancellation charge and refund computation for renter-initiated cancellations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone as dt_timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

_ZERO = Decimal("0.00")
_CENT = Decimal("0.01")
_SECONDS_PER_HOUR = Decimal("3600")


def _quantize(value: Decimal) -> Decimal:
    """Round a Decimal value to cents using HALF_UP."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


class TierLike(Protocol):
    hours_before_start: int
    charge_percentage: Decimal


@dataclass(frozen=True)
class CancellationCharge:
    """How a cancelled payment splits between the renter refund and the penalty."""

    hours_before_start: Decimal
    charge_percentage: Decimal
    charge_amount: Decimal
    refund_amount: Decimal
    matched_tier_hours: int | None = None


def start_instant(start_day: date) -> datetime:
    """A booking starts at UTC midnight of its earliest requested day."""
    return datetime.combine(start_day, time.min, tzinfo=dt_timezone.utc)


def hours_until_start(start_day: date, now: datetime) -> Decimal:
    """Hours between ``now`` and the booking start; negative once it started."""
    delta = start_instant(start_day) - now
    return Decimal(str(delta.total_seconds())) / _SECONDS_PER_HOUR


def select_tier(hours_difference: Decimal, tiers: Iterable[TierLike]) -> TierLike | None:
    """Pick the cancellation tier for ``hours_difference``.

    Tiers are scanned by ``hours_before_start`` descending and the first
    tier whose threshold is at or above the remaining hours wins.
    """
    ordered = sorted(tiers, key=lambda tier: tier.hours_before_start, reverse=True)
    for tier in ordered:
        if hours_difference <= Decimal(tier.hours_before_start):
            return tier
    return None


def compute_cancellation_charge(
    *,
    total_paid: Decimal,
    tiers: Iterable[TierLike],
    start_day: date,
    now: datetime,
) -> CancellationCharge:
    total = _quantize(Decimal(total_paid))
    hours = hours_until_start(start_day, now)
    tier = select_tier(hours, tiers)
    if tier is None:
        return CancellationCharge(
            hours_before_start=hours,
            charge_percentage=_ZERO,
            charge_amount=_ZERO,
            refund_amount=total,
        )

    percentage = Decimal(tier.charge_percentage)
    charge = _quantize(total * percentage / Decimal("100"))
    return CancellationCharge(
        hours_before_start=hours,
        charge_percentage=percentage,
        charge_amount=charge,
        refund_amount=max(_ZERO, total - charge),
        matched_tier_hours=tier.hours_before_start,
    )


def full_refund(total_paid: Decimal) -> CancellationCharge:
    """Owner-initiated cancellations refund everything that was paid."""
    total = _quantize(Decimal(total_paid))
    return CancellationCharge(
        hours_before_start=_ZERO,
        charge_percentage=_ZERO,
        charge_amount=_ZERO,
        refund_amount=total,
    )


def no_charge() -> CancellationCharge:
    """Nothing was captured, so there is nothing to charge or refund."""
    return CancellationCharge(
        hours_before_start=_ZERO,
        charge_percentage=_ZERO,
        charge_amount=_ZERO,
        refund_amount=_ZERO,
    )

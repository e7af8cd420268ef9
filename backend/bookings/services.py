"""Booking creation, status changes and cancellation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from typing import Any, Iterable

from django.db import transaction
from django.utils import timezone

from core import errors
from notifications.services import notify_user
from payments import services as payment_services
from payments.cancellation import (
    CancellationCharge,
    compute_cancellation_charge,
    full_refund,
    no_charge,
)
from payments.models import Settlement
from products.models import Product

from . import availability, domain
from .models import Booking, BookingDay

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CancellationOutcome:
    booking: Booking
    charge: CancellationCharge

    def as_dict(self) -> dict[str, Any]:
        return {
            "bookingId": self.booking.id,
            "status": self.booking.status,
            "refundAmount": str(self.charge.refund_amount),
            "cancellationCharge": str(self.charge.charge_amount),
            "chargePercentage": str(self.charge.charge_percentage),
        }


def _utc_today(now: datetime):
    return now.astimezone(dt_timezone.utc).date()


def create_booking(
    *,
    product_id: int,
    renter,
    days: Iterable[Any],
    delivery_type: str = Booking.DeliveryType.PICKUP,
    delivery_info: dict | None = None,
    now: datetime | None = None,
) -> Booking:
    """Create a pending booking, holding one unit of stock per requested day."""
    requested = availability.normalize_days(days)
    now = now or timezone.now()
    if requested[0] < _utc_today(now):
        raise errors.ValidationError("Bookings cannot include days in the past.")
    if delivery_type not in Booking.DeliveryType.values:
        raise errors.ValidationError("delivery_type must be 'pickup' or 'delivery'.")

    product = Product.objects.bookable().filter(pk=product_id).first()
    if product is None:
        raise errors.NotFoundError("Product not found.")
    if product.owner_id == getattr(renter, "id", renter):
        raise errors.AuthorizationError("You cannot book your own product.")

    snapshot = availability.check_availability(product, requested)
    if not snapshot.available:
        raise errors.ConflictError(
            snapshot.message,
            extra={
                "reason": snapshot.reason,
                "perDay": [entry.as_dict() for entry in snapshot.per_day],
            },
        )

    daily_price = Decimal(product.daily_price)
    with transaction.atomic():
        availability.reserve_days(product, requested)
        booking = Booking.objects.create(
            product=product,
            owner_id=product.owner_id,
            renter=renter,
            start_day=requested[0],
            end_day=requested[-1],
            daily_price=daily_price,
            total_amount=daily_price * len(requested),
            delivery_type=delivery_type,
            delivery_info=delivery_info or {},
        )
        BookingDay.objects.bulk_create(
            [BookingDay(booking=booking, product=product, day=day) for day in requested]
        )

    logger.info(
        "bookings: created",
        extra={"booking_id": booking.id, "product_id": product.id, "days": len(requested)},
    )
    notify_user(
        booking.owner_id,
        "New Booking Request",
        f"You have a new booking request for {product.title}.",
        kind="booking",
        booking_id=booking.id,
    )
    return booking


def _lock_booking(booking_id: int) -> Booking:
    booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
    if booking is None:
        raise errors.NotFoundError("Booking not found.")
    return booking


def update_booking_status(
    booking_id: int,
    actor,
    new_status: str,
    *,
    reason: str = "",
) -> Booking:
    """Owner-driven lifecycle transition; cancellation goes through ``cancel_booking``."""
    new_status = domain.parse_status(new_status)
    if new_status == Booking.Status.CANCELLED:
        return cancel_booking(booking_id, actor, reason=reason).booking

    with transaction.atomic():
        booking = _lock_booking(booking_id)
        domain.assert_owner(booking, actor, action="update the booking status")
        domain.assert_transition_allowed(booking.status, new_status)
        previous = booking.status
        booking.status = new_status
        booking.save(update_fields=["status", "updated_at"])
        if booking.is_terminal():
            availability.release_days(booking)

    logger.info(
        "bookings: status changed",
        extra={"booking_id": booking.id, "from": previous, "to": new_status},
    )
    notify_user(
        booking.renter_id,
        "Booking Status Updated",
        f"Your booking #{booking.id} is now {new_status}.",
        kind="booking",
        booking_id=booking.id,
    )
    return booking


def _cancellation_charge(
    booking: Booking,
    settlement: Settlement | None,
    role: str,
    now: datetime,
) -> CancellationCharge:
    if settlement is None or settlement.payment_status != Settlement.PaymentStatus.PAID:
        return no_charge()
    if role == "owner":
        return full_refund(settlement.total_amount)
    return compute_cancellation_charge(
        total_paid=settlement.total_amount,
        tiers=list(booking.product.cancellation_tiers.all()),
        start_day=booking.start_day,
        now=now,
    )


def cancel_booking(
    booking_id: int,
    actor,
    *,
    reason: str = "",
    now: datetime | None = None,
) -> CancellationOutcome:
    """Cancel a non-terminal booking and refund what the cancellation rules allow.

    The payout is taken off the schedule first, so a booking whose owner has
    already been paid (or is being paid) cannot be cancelled. The Stripe
    refund is requested before any other local change; if it fails the
    booking and settlement are left exactly as they were.
    """
    now = now or timezone.now()
    booking = Booking.objects.select_related("product").filter(pk=booking_id).first()
    if booking is None:
        raise errors.NotFoundError("Booking not found.")
    role = domain.assert_participant(booking, actor)
    domain.assert_can_cancel(booking)

    settlement = payment_services.get_settlement_for_booking(booking)
    held = payment_services.hold_payout(settlement) if settlement is not None else None
    try:
        if settlement is not None:
            settlement.refresh_from_db()
        charge = _cancellation_charge(booking, settlement, role, now)
        refund_id = ""
        if settlement is not None and settlement.payment_status == Settlement.PaymentStatus.PAID:
            refund_id = payment_services.refund_for_cancellation(settlement, charge)
        booking = _apply_cancellation(
            booking_id,
            actor,
            role=role,
            reason=reason,
            now=now,
            settlement=settlement,
            charge=charge,
            refund_id=refund_id,
        )
    except Exception:
        if held is not None:
            payment_services.restore_payout(settlement, held)
        raise

    logger.info(
        "bookings: cancelled",
        extra={
            "booking_id": booking.id,
            "cancelled_by": role,
            "charge": str(charge.charge_amount),
            "refund": str(charge.refund_amount),
        },
    )
    recipient_id = booking.owner_id if role == "renter" else booking.renter_id
    notify_user(
        recipient_id,
        "Booking Cancelled",
        f"Booking #{booking.id} was cancelled by the {role}.",
        kind="booking",
        booking_id=booking.id,
    )
    return CancellationOutcome(booking=booking, charge=charge)


def _apply_cancellation(
    booking_id: int,
    actor,
    *,
    role: str,
    reason: str,
    now: datetime,
    settlement: Settlement | None,
    charge: CancellationCharge,
    refund_id: str,
) -> Booking:
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        if booking.is_terminal():
            logger.warning(
                "bookings: booking reached %s while cancelling",
                booking.status,
                extra={"booking_id": booking.id, "refund_id": refund_id},
            )
            domain.assert_can_cancel(booking)
        booking.status = Booking.Status.CANCELLED
        booking.cancellation_reason = (reason or "").strip()
        booking.cancelled_by = role
        booking.cancellation_initiated_by_id = getattr(actor, "id", actor)
        booking.cancelled_at = now
        update_fields = [
            "status",
            "cancellation_reason",
            "cancelled_by",
            "cancellation_initiated_by",
            "cancelled_at",
            "updated_at",
        ]
        if refund_id:
            booking.payment_status = Booking.PaymentStatus.REFUNDED
            update_fields.append("payment_status")
        booking.save(update_fields=update_fields)
        availability.release_days(booking)
        if settlement is not None:
            payment_services.record_cancellation(settlement, charge, refund_id=refund_id, now=now)
    return booking

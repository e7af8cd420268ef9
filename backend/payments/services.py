"""Settlement lifecycle: payment, cancellation refunds and single payouts."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from bookings.models import Booking
from core import errors
from notifications.services import notify_user

from . import stripe_api
from .cancellation import CancellationCharge
from .commission import (
    CommissionPolicyProvider,
    compute_commission,
    default_provider,
    split_cancellation_charge,
)
from .ledger import has_transaction, log_transaction
from .models import OwnerPayoutAccount, Settlement, Transaction

logger = logging.getLogger(__name__)

_ZERO = Decimal("0.00")
PAYABLE_BOOKING_STATUSES = (Booking.Status.PENDING, Booking.Status.CONFIRMED)
RETAINED_PAYMENT_STATUSES = (
    Settlement.PaymentStatus.PAID,
    Settlement.PaymentStatus.PARTIALLY_REFUNDED,
)
SENT_PAYOUT_STATUSES = (Settlement.PayoutStatus.PROCESSING, Settlement.PayoutStatus.PAID)


def payout_hold() -> timedelta:
    return timedelta(days=int(getattr(settings, "PAYOUT_HOLD_DAYS", 15)))


def get_settlement_for_booking(booking: Booking) -> Settlement | None:
    return Settlement.objects.filter(booking=booking).first()


def is_payout_eligible(settlement: Settlement, booking: Booking) -> bool:
    """Paid and return verified, or the owner share of a cancellation charge."""
    if booking.status == Booking.Status.CANCELLED:
        return (
            settlement.cancelled_at is not None
            and settlement.cancellation_owner_amount > _ZERO
            and settlement.payment_status in RETAINED_PAYMENT_STATUSES
        )
    return (
        settlement.payment_status == Settlement.PaymentStatus.PAID
        and booking.all_return_photos_verified
    )


def sync_payout_eligibility(booking: Booking, *, now: datetime | None = None) -> bool:
    """Schedule or unschedule the booking's payout after a verification change.

    Must run inside ``transaction.atomic``. Returns True when the payout was
    scheduled by this call.
    """
    settlement = Settlement.objects.select_for_update().filter(booking=booking).first()
    if settlement is None:
        return False
    now = now or timezone.now()

    if (
        settlement.payout_status == Settlement.PayoutStatus.PENDING
        and is_payout_eligible(settlement, booking)
    ):
        settlement.payout_status = Settlement.PayoutStatus.SCHEDULED
        settlement.scheduled_payout_date = now + payout_hold()
        settlement.save(update_fields=["payout_status", "scheduled_payout_date", "updated_at"])
        logger.info(
            "payments: payout scheduled",
            extra={
                "settlement_id": settlement.id,
                "booking_id": booking.id,
                "scheduled_payout_date": settlement.scheduled_payout_date.isoformat(),
            },
        )
        return True

    if (
        settlement.payout_status == Settlement.PayoutStatus.SCHEDULED
        and not is_payout_eligible(settlement, booking)
    ):
        settlement.payout_status = Settlement.PayoutStatus.PENDING
        settlement.scheduled_payout_date = None
        settlement.save(update_fields=["payout_status", "scheduled_payout_date", "updated_at"])
        logger.info(
            "payments: payout unscheduled",
            extra={"settlement_id": settlement.id, "booking_id": booking.id},
        )
    return False


def notify_payout_scheduled(booking: Booking) -> None:
    days = int(getattr(settings, "PAYOUT_HOLD_DAYS", 15))
    notify_user(
        booking.owner_id,
        "Payout Scheduled",
        f"All return photos for booking #{booking.id} are verified. "
        f"Your payout is scheduled in {days} days.",
        kind="payout",
        booking_id=booking.id,
    )


def create_payment(
    booking_id: int,
    actor,
    *,
    provider: CommissionPolicyProvider | None = None,
) -> Settlement:
    """Open (or reopen) the renter's charge for a booking.

    The commission snapshot is taken once, when the settlement row is first
    created, and reused by every later attempt.
    """
    booking = Booking.objects.select_related("product").filter(pk=booking_id).first()
    if booking is None:
        raise errors.NotFoundError("Booking not found.")
    if getattr(actor, "id", actor) != booking.renter_id:
        raise errors.AuthorizationError("Only the renter can pay for this booking.")
    if booking.payment_status != Booking.PaymentStatus.UNPAID:
        raise errors.ConflictError("Booking is already paid.")
    if booking.status not in PAYABLE_BOOKING_STATUSES:
        raise errors.StateError(f"Cannot pay for a {booking.status} booking.")

    provider = provider or default_provider
    with transaction.atomic():
        locked = Booking.objects.select_for_update().get(pk=booking.pk)
        settlement = Settlement.objects.select_for_update().filter(booking=locked).first()
        if settlement is not None and settlement.payment_status != Settlement.PaymentStatus.PENDING:
            raise errors.ConflictError("Booking is already paid.")
        if settlement is None:
            policy = provider.current()
            snapshot = compute_commission(locked.total_amount, policy)
            settlement = Settlement.objects.create(
                booking=locked,
                owner_id=locked.owner_id,
                renter_id=locked.renter_id,
                commission_policy=policy if policy.pk else None,
                currency=settings.PLATFORM_CURRENCY,
                total_amount=snapshot.total_amount,
                commission_type=snapshot.commission_type,
                commission_value=snapshot.commission_value,
                commission_amount=snapshot.commission_amount,
                owner_payout_amount=snapshot.owner_payout_amount,
            )
            logger.info(
                "payments: settlement opened",
                extra={
                    "settlement_id": settlement.id,
                    "booking_id": locked.id,
                    "commission_type": snapshot.commission_type,
                    "commission_amount": str(snapshot.commission_amount),
                },
            )

    intent_id, client_secret = stripe_api.create_payment_intent(settlement=settlement)
    if intent_id != settlement.payment_intent_id or client_secret != settlement.client_secret:
        settlement.payment_intent_id = intent_id
        settlement.client_secret = client_secret
        settlement.save(update_fields=["payment_intent_id", "client_secret", "updated_at"])
    return settlement


def _intent_value(intent: Any, field: str, default: Any = "") -> Any:
    if isinstance(intent, dict):
        return intent.get(field, default)
    value = getattr(intent, field, None)
    return default if value is None else value


def confirm_payment(payment_intent_id: str, *, actor=None, intent: Any | None = None) -> Settlement:
    """Mark a settlement paid once Stripe reports its PaymentIntent succeeded.

    Calling it again for an already paid settlement returns it unchanged.
    When the booking was cancelled before the charge landed, the whole charge
    is refunded instead.
    """
    if not payment_intent_id:
        raise errors.ValidationError("payment_intent_id is required.")
    settlement = (
        Settlement.objects.select_related("booking")
        .filter(payment_intent_id=payment_intent_id)
        .first()
    )
    if settlement is None:
        raise errors.NotFoundError("Payment not found.")
    if actor is not None and not getattr(actor, "is_staff", False):
        if getattr(actor, "id", actor) != settlement.renter_id:
            raise errors.AuthorizationError("Only the renter can confirm this payment.")
    if settlement.payment_status != Settlement.PaymentStatus.PENDING:
        return settlement

    if intent is None:
        intent = stripe_api.retrieve_payment_intent(payment_intent_id)
    intent_status = _intent_value(intent, "status")
    if intent_status != "succeeded":
        raise errors.StateError(f"Payment has not succeeded (status: {intent_status or 'unknown'}).")

    now = timezone.now()
    scheduled = False
    with transaction.atomic():
        settlement = Settlement.objects.select_for_update().get(pk=settlement.pk)
        if settlement.payment_status != Settlement.PaymentStatus.PENDING:
            return settlement
        booking = Booking.objects.select_for_update().get(pk=settlement.booking_id)
        cancelled = booking.status == Booking.Status.CANCELLED

        if not cancelled:
            settlement.payment_status = Settlement.PaymentStatus.PAID
            settlement.paid_at = now
            settlement.save(update_fields=["payment_status", "paid_at", "updated_at"])

            booking.payment_status = Booking.PaymentStatus.PAID
            booking.save(update_fields=["payment_status", "updated_at"])

            _log_charge(booking, settlement, payment_intent_id, with_fee=True)
            scheduled = sync_payout_eligibility(booking, now=now)
            settlement.refresh_from_db()

    if cancelled:
        return refund_charge_for_cancelled_booking(settlement, payment_intent_id, now=now)

    logger.info(
        "payments: payment confirmed",
        extra={"settlement_id": settlement.id, "booking_id": booking.id},
    )
    notify_user(
        booking.owner_id,
        "Payment Received",
        f"The renter paid {settlement.total_amount} for booking #{booking.id}.",
        kind="payment",
        booking_id=booking.id,
    )
    if scheduled:
        notify_payout_scheduled(booking)
    return settlement


def _log_charge(booking: Booking, settlement: Settlement, payment_intent_id: str, *, with_fee: bool) -> None:
    if has_transaction(
        booking=booking,
        kind=Transaction.Kind.BOOKING_CHARGE,
        stripe_id=payment_intent_id,
    ):
        return
    log_transaction(
        user=booking.renter,
        booking=booking,
        settlement=settlement,
        kind=Transaction.Kind.BOOKING_CHARGE,
        amount=settlement.total_amount,
        currency=settlement.currency,
        stripe_id=payment_intent_id,
    )
    if with_fee and settlement.commission_amount > _ZERO:
        log_transaction(
            user=booking.owner,
            booking=booking,
            settlement=settlement,
            kind=Transaction.Kind.PLATFORM_FEE,
            amount=settlement.commission_amount,
            currency=settlement.currency,
            stripe_id=payment_intent_id,
        )


def refund_charge_for_cancelled_booking(
    settlement: Settlement,
    payment_intent_id: str,
    *,
    now: datetime,
) -> Settlement:
    """Give back the whole charge when it lands after the booking was cancelled.

    The refund is requested first; if Stripe fails the settlement stays
    ``pending`` and the next confirmation or webhook delivery retries it.
    """
    refund_id = stripe_api.create_refund(settlement=settlement, amount=settlement.total_amount)

    with transaction.atomic():
        settlement = Settlement.objects.select_for_update().get(pk=settlement.pk)
        if settlement.payment_status != Settlement.PaymentStatus.PENDING:
            return settlement
        booking = Booking.objects.select_for_update().get(pk=settlement.booking_id)

        settlement.payment_status = Settlement.PaymentStatus.REFUNDED
        settlement.paid_at = now
        settlement.refund_amount = settlement.total_amount
        settlement.refund_id = refund_id
        settlement.refunded_at = now
        settlement.save(
            update_fields=[
                "payment_status",
                "paid_at",
                "refund_amount",
                "refund_id",
                "refunded_at",
                "updated_at",
            ]
        )
        booking.payment_status = Booking.PaymentStatus.REFUNDED
        booking.save(update_fields=["payment_status", "updated_at"])

        _log_charge(booking, settlement, payment_intent_id, with_fee=False)
        log_transaction(
            user=booking.renter,
            booking=booking,
            settlement=settlement,
            kind=Transaction.Kind.REFUND,
            amount=settlement.total_amount,
            currency=settlement.currency,
            stripe_id=refund_id or None,
        )

    logger.warning(
        "payments: charge for a cancelled booking refunded",
        extra={"settlement_id": settlement.id, "booking_id": booking.id, "refund_id": refund_id},
    )
    notify_user(
        booking.renter_id,
        "Payment Refunded",
        f"Booking #{booking.id} was already cancelled, so your payment of "
        f"{settlement.total_amount} has been refunded.",
        kind="payment",
        booking_id=booking.id,
    )
    return settlement


def hold_payout(settlement: Settlement) -> tuple[str, datetime | None]:
    """Take a settlement off the payout schedule before a cancellation refund.

    Runs under the settlement row lock, so it cannot interleave with the
    ``scheduled -> processing`` claim. Raises StateError once the owner has
    been paid or a transfer is in flight. Returns the previous payout status
    and date for ``restore_payout``.
    """
    with transaction.atomic():
        locked = Settlement.objects.select_for_update().get(pk=settlement.pk)
        if locked.payout_status in SENT_PAYOUT_STATUSES:
            raise errors.StateError(
                f"Payout is {locked.payout_status}; the booking can no longer be cancelled."
            )
        previous = (locked.payout_status, locked.scheduled_payout_date)
        if locked.payout_status != Settlement.PayoutStatus.PENDING:
            locked.payout_status = Settlement.PayoutStatus.PENDING
            locked.scheduled_payout_date = None
            locked.save(update_fields=["payout_status", "scheduled_payout_date", "updated_at"])
    return previous


def restore_payout(settlement: Settlement, previous: tuple[str, datetime | None]) -> None:
    """Undo ``hold_payout`` after a cancellation that did not go through."""
    status, scheduled_for = previous
    if status == Settlement.PayoutStatus.PENDING:
        return
    Settlement.objects.filter(
        pk=settlement.pk,
        payout_status=Settlement.PayoutStatus.PENDING,
        cancelled_at__isnull=True,
    ).update(payout_status=status, scheduled_payout_date=scheduled_for, updated_at=timezone.now())


def refund_for_cancellation(settlement: Settlement, charge: CancellationCharge) -> str:
    """Ask Stripe for the cancellation refund; raises before anything is recorded."""
    if charge.refund_amount <= _ZERO:
        return ""
    return stripe_api.create_refund(settlement=settlement, amount=charge.refund_amount)


def record_cancellation(
    settlement: Settlement,
    charge: CancellationCharge,
    *,
    refund_id: str,
    now: datetime,
) -> Settlement:
    """Store the cancellation outcome; must run inside ``transaction.atomic``."""
    settlement = Settlement.objects.select_for_update().get(pk=settlement.pk)
    if (
        settlement.payment_status == Settlement.PaymentStatus.PAID
        and not refund_id
        and charge.charge_amount <= _ZERO
    ):
        raise errors.ConflictError("The payment was confirmed while cancelling; try again.")
    if settlement.payout_status in SENT_PAYOUT_STATUSES:
        raise errors.StateError(f"Payout is {settlement.payout_status}; cannot record a cancellation.")
    update_fields = [
        "cancellation_charge",
        "cancellation_charge_percentage",
        "refund_amount",
        "updated_at",
    ]
    settlement.cancellation_charge = charge.charge_amount
    settlement.cancellation_charge_percentage = charge.charge_percentage
    settlement.refund_amount = charge.refund_amount

    if settlement.payment_status == Settlement.PaymentStatus.PAID and charge.refund_amount > _ZERO:
        if charge.refund_amount >= settlement.total_amount:
            settlement.payment_status = Settlement.PaymentStatus.REFUNDED
        else:
            settlement.payment_status = Settlement.PaymentStatus.PARTIALLY_REFUNDED
        settlement.refund_id = refund_id
        settlement.refunded_at = now
        update_fields += ["payment_status", "refund_id", "refunded_at"]
        log_transaction(
            user=settlement.renter,
            booking=settlement.booking,
            settlement=settlement,
            kind=Transaction.Kind.REFUND,
            amount=charge.refund_amount,
            currency=settlement.currency,
            stripe_id=refund_id or None,
        )

    settlement.cancelled_at = now
    update_fields.append("cancelled_at")
    if settlement.payment_status in RETAINED_PAYMENT_STATUSES and charge.charge_amount > _ZERO:
        split = split_cancellation_charge(charge.charge_amount, settlement)
        settlement.cancellation_commission_amount = split.commission_amount
        settlement.cancellation_owner_amount = split.owner_payout_amount
        update_fields += ["cancellation_commission_amount", "cancellation_owner_amount"]

    settlement.payout_error = ""
    if settlement.cancellation_owner_amount > _ZERO:
        settlement.payout_status = Settlement.PayoutStatus.SCHEDULED
        settlement.scheduled_payout_date = now + payout_hold()
    else:
        settlement.payout_status = Settlement.PayoutStatus.PENDING
        settlement.scheduled_payout_date = None
    update_fields += ["payout_status", "scheduled_payout_date", "payout_error"]

    settlement.save(update_fields=update_fields)
    logger.info(
        "payments: cancellation recorded",
        extra={
            "settlement_id": settlement.id,
            "charge": str(charge.charge_amount),
            "owner_share": str(settlement.cancellation_owner_amount),
            "platform_share": str(settlement.cancellation_commission_amount),
        },
    )
    return settlement


def claim_for_payout(settlement_id: int, *, now: datetime) -> bool:
    """Compare-and-set ``scheduled -> processing``; True when this caller won."""
    return bool(
        Settlement.objects.filter(
            pk=settlement_id,
            payout_status=Settlement.PayoutStatus.SCHEDULED,
        ).update(payout_status=Settlement.PayoutStatus.PROCESSING, updated_at=now)
    )


def _release_claim(settlement_id: int, *, error: str = "", attempt_failed: bool = False) -> None:
    changes: dict[str, Any] = {}
    if attempt_failed:
        changes["payout_attempts"] = F("payout_attempts") + 1
    Settlement.objects.filter(
        pk=settlement_id,
        payout_status=Settlement.PayoutStatus.PROCESSING,
    ).update(
        payout_status=Settlement.PayoutStatus.SCHEDULED,
        payout_error=error,
        updated_at=timezone.now(),
        **changes,
    )


def transfer_failed_for_good(exc: errors.ExternalGatewayError) -> bool:
    """Stripe stores definite failures under the idempotency key, so the next try needs a new key."""
    return not exc.retryable


def get_payout_account(owner_id: int) -> OwnerPayoutAccount | None:
    account = OwnerPayoutAccount.objects.filter(user_id=owner_id).first()
    if account is None or not account.is_payout_ready:
        return None
    return account


def process_single_payout(settlement_id: int, *, now: datetime | None = None) -> Settlement:
    """Pay out one scheduled settlement immediately."""
    now = now or timezone.now()
    if not claim_for_payout(settlement_id, now=now):
        current = Settlement.objects.filter(pk=settlement_id).values_list("payout_status", flat=True).first()
        if current is None:
            raise errors.NotFoundError("Settlement not found.")
        raise errors.ConflictError(f"Payout is {current}; only scheduled payouts can be processed.")

    settlement = Settlement.objects.select_related("booking").get(pk=settlement_id)
    booking = settlement.booking
    if not is_payout_eligible(settlement, booking):
        _release_claim(settlement_id)
        raise errors.StateError(
            "Payout requires a paid settlement with verified return photos or a cancellation share."
        )

    account = get_payout_account(settlement.owner_id)
    if account is None:
        _release_claim(settlement_id)
        raise errors.StateError("Owner has no verified payout account.")

    try:
        transfer_id = stripe_api.create_transfer(
            destination=account.stripe_account_id,
            amount=settlement.payable_amount,
            currency=settlement.currency,
            description=f"Owner payout for booking #{booking.id}",
            metadata={
                "kind": "owner_payout",
                "settlement_id": str(settlement.id),
                "booking_id": str(booking.id),
            },
            transfer_group=f"booking:{booking.id}",
            idempotency_key=f"settlement:{settlement.id}:owner_payout_v1:a{settlement.payout_attempts}",
        )
    except errors.ExternalGatewayError as exc:
        _release_claim(settlement_id, error=str(exc), attempt_failed=transfer_failed_for_good(exc))
        logger.warning(
            "payments: manual payout failed",
            extra={"settlement_id": settlement.id, "error": str(exc)},
        )
        raise

    with transaction.atomic():
        Settlement.objects.filter(
            pk=settlement.pk,
            payout_status=Settlement.PayoutStatus.PROCESSING,
        ).update(
            payout_status=Settlement.PayoutStatus.PAID,
            transfer_id=transfer_id,
            payout_at=now,
            payout_error="",
            updated_at=now,
        )
        log_transaction(
            user=settlement.owner,
            booking=booking,
            settlement=settlement,
            kind=Transaction.Kind.OWNER_EARNING,
            amount=settlement.payable_amount,
            currency=settlement.currency,
            stripe_id=transfer_id,
        )

    logger.info(
        "payments: manual payout sent",
        extra={"settlement_id": settlement.id, "transfer_id": transfer_id},
    )
    notify_user(
        settlement.owner_id,
        "Payout Sent",
        f"{settlement.payable_amount} was sent for booking #{booking.id}.",
        kind="payout",
        booking_id=booking.id,
    )
    settlement.refresh_from_db()
    return settlement


def requeue_payout(settlement_id: int) -> Settlement:
    """Move a failed payout back to ``scheduled`` so the next batch retries it."""
    updated = Settlement.objects.filter(
        pk=settlement_id,
        payout_status=Settlement.PayoutStatus.FAILED,
    ).update(
        payout_status=Settlement.PayoutStatus.SCHEDULED,
        payout_error="",
        updated_at=timezone.now(),
    )
    settlement = Settlement.objects.filter(pk=settlement_id).first()
    if settlement is None:
        raise errors.NotFoundError("Settlement not found.")
    if not updated:
        raise errors.ConflictError(
            f"Payout is {settlement.payout_status}; only failed payouts can be requeued."
        )
    logger.info("payments: payout requeued", extra={"settlement_id": settlement_id})
    return settlement

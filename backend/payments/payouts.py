"""Batch payout run: pays every due settlement, one aggregate transfer per owner."""

from __future__ import annotations

import hashlib
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from bookings.models import Booking
from core import errors
from notifications.services import notify_user

from . import stripe_api
from .ledger import log_transaction
from .models import PayoutRun, Settlement, Transaction
from .services import (
    RETAINED_PAYMENT_STATUSES,
    claim_for_payout,
    get_payout_account,
    is_payout_eligible,
    transfer_failed_for_good,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0.00")

SKIP_NO_ACCOUNT = "no_payout_account"
SKIP_NOT_ELIGIBLE = "not_eligible"
SKIP_CLAIMED = "claimed_elsewhere"


@dataclass
class PayoutReport:
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)
    run_id: int | None = None

    def add(self, settlement: Settlement, outcome: str, **extra: Any) -> None:
        if outcome == "paid":
            self.successful += 1
        elif outcome == "failed":
            self.failed += 1
        else:
            self.skipped += 1
        self.details.append(
            {
                "settlementId": settlement.id,
                "bookingId": settlement.booking_id,
                "ownerId": settlement.owner_id,
                "amount": str(settlement.payable_amount),
                "status": outcome,
                **extra,
            }
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "details": self.details,
        }


def due_settlements(now: datetime):
    """Scheduled, due rows: verified rentals plus owner shares of cancellation charges."""
    rental = Q(
        payment_status=Settlement.PaymentStatus.PAID,
        booking__all_return_photos_verified=True,
    ) & ~Q(booking__status=Booking.Status.CANCELLED)
    cancellation_share = Q(
        booking__status=Booking.Status.CANCELLED,
        cancelled_at__isnull=False,
        cancellation_owner_amount__gt=_ZERO,
        payment_status__in=RETAINED_PAYMENT_STATUSES,
    )
    return (
        Settlement.objects.select_related("booking", "owner")
        .filter(
            payout_status=Settlement.PayoutStatus.SCHEDULED,
            scheduled_payout_date__lte=now,
        )
        .filter(rental | cancellation_share)
        .order_by("owner_id", "scheduled_payout_date", "id")
    )


def _transfer_key(owner_id: int, settlements: list[Settlement]) -> str:
    parts = sorted(f"{settlement.pk}.{settlement.payout_attempts}" for settlement in settlements)
    digest = hashlib.sha256(",".join(parts).encode()).hexdigest()
    return f"owner:{owner_id}:payout_batch:{digest[:32]}:v1"


def _mark_failed(
    claimed: list[Settlement],
    error: str,
    report: PayoutReport,
    *,
    attempt_failed: bool = False,
) -> None:
    changes: dict[str, Any] = {}
    if attempt_failed:
        changes["payout_attempts"] = F("payout_attempts") + 1
    Settlement.objects.filter(
        pk__in=[settlement.pk for settlement in claimed],
        payout_status=Settlement.PayoutStatus.PROCESSING,
    ).update(
        payout_status=Settlement.PayoutStatus.FAILED,
        payout_error=error,
        updated_at=timezone.now(),
        **changes,
    )
    for settlement in claimed:
        report.add(settlement, "failed", error=error)


def _mark_paid(claimed: list[Settlement], transfer_id: str, now: datetime, report: PayoutReport) -> None:
    with transaction.atomic():
        Settlement.objects.filter(
            pk__in=[settlement.pk for settlement in claimed],
            payout_status=Settlement.PayoutStatus.PROCESSING,
        ).update(
            payout_status=Settlement.PayoutStatus.PAID,
            transfer_id=transfer_id,
            payout_at=now,
            payout_error="",
            updated_at=now,
        )
        for settlement in claimed:
            log_transaction(
                user=settlement.owner,
                booking=settlement.booking,
                settlement=settlement,
                kind=Transaction.Kind.OWNER_EARNING,
                amount=settlement.payable_amount,
                currency=settlement.currency,
                stripe_id=transfer_id or None,
            )
    for settlement in claimed:
        report.add(settlement, "paid", transferId=transfer_id)


def _pay_owner(
    owner_id: int,
    settlements: list[Settlement],
    *,
    now: datetime,
    run: PayoutRun,
    report: PayoutReport,
) -> None:
    """Handle one owner's group; every outcome is recorded on ``report``."""
    account = get_payout_account(owner_id)
    if account is None:
        for settlement in settlements:
            report.add(settlement, "skipped", reason=SKIP_NO_ACCOUNT)
        logger.info(
            "payouts: owner skipped, no verified payout account",
            extra={"owner_id": owner_id, "settlements": len(settlements), "run_id": run.id},
        )
        notify_user(
            owner_id,
            "Connect Your Payment Account",
            f"You have {len(settlements)} payout(s) waiting. "
            "Connect and verify a payout account to receive them.",
            kind="payout",
        )
        return

    claimed: list[Settlement] = []
    for settlement in settlements:
        if not is_payout_eligible(settlement, settlement.booking):
            report.add(settlement, "skipped", reason=SKIP_NOT_ELIGIBLE)
            continue
        if not claim_for_payout(settlement.pk, now=now):
            report.add(settlement, "skipped", reason=SKIP_CLAIMED)
            continue
        claimed.append(settlement)
    if not claimed:
        return

    amount = sum((settlement.payable_amount for settlement in claimed), _ZERO)
    settlement_ids = [settlement.pk for settlement in claimed]
    try:
        if amount > _ZERO:
            transfer_id = stripe_api.create_transfer(
                destination=account.stripe_account_id,
                amount=amount,
                currency=claimed[0].currency,
                description=f"Payout for {len(claimed)} booking(s)",
                metadata={
                    "kind": "owner_payout_batch",
                    "owner_id": str(owner_id),
                    "run_id": str(run.id),
                    "settlement_ids": ",".join(str(pk) for pk in settlement_ids),
                },
                transfer_group=f"payout-run:{run.id}",
                idempotency_key=_transfer_key(owner_id, claimed),
            )
        else:
            transfer_id = ""
    except errors.ExternalGatewayError as exc:
        logger.warning(
            "payouts: transfer failed",
            extra={"owner_id": owner_id, "run_id": run.id, "error": str(exc)},
        )
        _mark_failed(claimed, str(exc), report, attempt_failed=transfer_failed_for_good(exc))
        return

    _mark_paid(claimed, transfer_id, now, report)

    logger.info(
        "payouts: owner paid",
        extra={
            "owner_id": owner_id,
            "run_id": run.id,
            "transfer_id": transfer_id,
            "amount": str(amount),
            "settlements": len(claimed),
        },
    )
    notify_user(
        owner_id,
        "Payout Sent",
        f"{amount} was sent to your payout account for {len(claimed)} booking(s).",
        kind="payout",
    )


def _record_crash(settlements: list[Settlement], error: str, report: PayoutReport) -> None:
    """Account for the rows of a group that stopped on an unexpected error."""
    seen = {detail["settlementId"] for detail in report.details}
    unreported = [settlement for settlement in settlements if settlement.id not in seen]
    processing = set(
        Settlement.objects.filter(
            pk__in=[settlement.pk for settlement in unreported],
            payout_status=Settlement.PayoutStatus.PROCESSING,
        ).values_list("pk", flat=True)
    )
    _mark_failed([settlement for settlement in unreported if settlement.pk in processing], error, report)
    for settlement in unreported:
        if settlement.pk not in processing:
            report.add(settlement, "skipped", reason="error", error=error)


def run_payout_batch(
    *,
    now: datetime | None = None,
    trigger: str = PayoutRun.Trigger.SCHEDULED,
    requested_by=None,
) -> PayoutReport:
    """Pay out every settlement that is scheduled and due at ``now``.

    Safe to re-run: only ``scheduled`` rows are selected and each row is
    claimed with a compare-and-set before any transfer. A failure in one
    owner's group is recorded and the run moves on to the next owner.
    """
    now = now or timezone.now()
    run = PayoutRun.objects.create(trigger=trigger, requested_by=requested_by)
    report = PayoutReport(run_id=run.id)

    try:
        groups: dict[int, list[Settlement]] = defaultdict(list)
        for settlement in due_settlements(now):
            groups[settlement.owner_id].append(settlement)
        report.total = sum(len(items) for items in groups.values())

        for owner_id, settlements in groups.items():
            try:
                _pay_owner(owner_id, settlements, now=now, run=run, report=report)
            except Exception as exc:
                logger.exception(
                    "payouts: owner group crashed",
                    extra={"owner_id": owner_id, "run_id": run.id},
                )
                _record_crash(settlements, str(exc) or exc.__class__.__name__, report)
    except Exception as exc:
        run.status = PayoutRun.Status.FAILED
        run.error = str(exc)
        run.finished_at = timezone.now()
        run.save(update_fields=["status", "error", "finished_at"])
        raise

    run.status = PayoutRun.Status.SUCCEEDED
    run.total = report.total
    run.successful = report.successful
    run.failed = report.failed
    run.skipped = report.skipped
    run.details = report.details
    run.finished_at = timezone.now()
    run.save(
        update_fields=["status", "total", "successful", "failed", "skipped", "details", "finished_at"]
    )
    logger.info(
        "payouts: run finished",
        extra={
            "run_id": run.id,
            "trigger": trigger,
            "total": report.total,
            "successful": report.successful,
            "failed": report.failed,
            "skipped": report.skipped,
        },
    )
    return report

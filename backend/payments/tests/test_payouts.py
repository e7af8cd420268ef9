"""Batch and single owner payouts."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
import stripe
from django.contrib.auth import get_user_model
from django.utils import timezone

from bookings import services as booking_services
from core import errors
from notifications.models import UserNotification
from payments import services
from payments.models import OwnerPayoutAccount, PayoutRun, Settlement, Transaction
from payments.payouts import run_payout_batch
from payments.tasks import process_batch_payouts
from products.models import CancellationTier, Product

pytestmark = pytest.mark.django_db

User = get_user_model()


@pytest.fixture
def second_owner():
    return User.objects.create_user(username="owner-two", password="testpass")


@pytest.fixture
def second_product(second_owner):
    return Product.objects.create(
        owner=second_owner,
        title="Camping Tent",
        daily_price=Decimal("50.00"),
        total_stock_units=3,
    )


@pytest.fixture
def make_due_settlement(paid_booking_factory):
    """Paid booking whose payout is scheduled and already past its hold."""

    def _create(**kwargs) -> Settlement:
        booking = paid_booking_factory(**kwargs)
        Settlement.objects.filter(booking=booking).update(
            payout_status=Settlement.PayoutStatus.SCHEDULED,
            scheduled_payout_date=timezone.now() - timedelta(days=1),
        )
        booking.all_return_photos_verified = True
        booking.save(update_fields=["all_return_photos_verified"])
        return Settlement.objects.get(booking=booking)

    return _create


def _day(offset: int):
    return timezone.now().date() + timedelta(days=offset)


def test_owners_without_account_are_skipped_and_others_paid(
    make_due_settlement, payout_account, second_product, owner_user, second_owner, stripe_mock
):
    first = make_due_settlement(days=[_day(2)])
    second = make_due_settlement(days=[_day(3)])
    other = make_due_settlement(days=[_day(2)], target=second_product)

    report = run_payout_batch()

    assert (report.total, report.successful, report.failed, report.skipped) == (3, 2, 0, 1)
    stripe_mock.transfer_create.assert_called_once()
    kwargs = stripe_mock.transfer_create.call_args.kwargs
    assert kwargs["destination"] == "acct_test_owner"
    assert kwargs["amount"] == 18000
    for settlement in (first, second):
        settlement.refresh_from_db()
        assert settlement.payout_status == Settlement.PayoutStatus.PAID
        assert settlement.transfer_id == "tr_test_1"
    other.refresh_from_db()
    assert other.payout_status == Settlement.PayoutStatus.SCHEDULED
    assert Transaction.objects.filter(kind=Transaction.Kind.OWNER_EARNING, user=owner_user).count() == 2
    assert UserNotification.objects.filter(user=second_owner, title="Connect Your Payment Account").exists()
    assert UserNotification.objects.filter(user=owner_user, title="Payout Sent").exists()

    run = PayoutRun.objects.get(pk=report.run_id)
    assert run.status == PayoutRun.Status.SUCCEEDED
    assert (run.successful, run.skipped) == (2, 1)
    skipped = [row for row in run.details if row["status"] == "skipped"]
    assert skipped[0]["reason"] == "no_payout_account"


def test_rerun_does_not_pay_twice(make_due_settlement, payout_account, stripe_mock):
    make_due_settlement()

    run_payout_batch()
    second = run_payout_batch()

    assert second.total == 0
    assert stripe_mock.transfer_create.call_count == 1


def test_settlements_not_yet_due_are_left_alone(make_due_settlement, payout_account, stripe_mock):
    settlement = make_due_settlement()
    Settlement.objects.filter(pk=settlement.pk).update(
        scheduled_payout_date=timezone.now() + timedelta(days=3)
    )

    report = run_payout_batch()

    assert report.total == 0
    stripe_mock.transfer_create.assert_not_called()


def test_transfer_failure_marks_group_failed_and_continues(
    make_due_settlement, payout_account, second_product, second_owner, stripe_mock
):
    OwnerPayoutAccount.objects.create(
        user=second_owner, stripe_account_id="acct_test_two", payouts_enabled=True
    )
    failing = make_due_settlement()
    working = make_due_settlement(days=[_day(2)], target=second_product)

    def _transfer(**kwargs):
        if kwargs["destination"] == "acct_test_owner":
            raise stripe.APIConnectionError("network down")
        return {"id": "tr_ok"}

    stripe_mock.transfer_create.side_effect = _transfer

    report = run_payout_batch()

    assert (report.successful, report.failed) == (1, 1)
    failing.refresh_from_db()
    working.refresh_from_db()
    assert failing.payout_status == Settlement.PayoutStatus.FAILED
    assert failing.payout_error
    assert failing.payout_attempts == 0
    assert working.payout_status == Settlement.PayoutStatus.PAID
    assert working.transfer_id == "tr_ok"


def test_requeue_puts_failed_payout_back_on_schedule(make_due_settlement, payout_account, stripe_mock):
    settlement = make_due_settlement()
    Settlement.objects.filter(pk=settlement.pk).update(
        payout_status=Settlement.PayoutStatus.FAILED, payout_error="boom"
    )

    requeued = services.requeue_payout(settlement.pk)

    assert requeued.payout_status == Settlement.PayoutStatus.SCHEDULED
    assert requeued.payout_error == ""
    with pytest.raises(errors.ConflictError):
        services.requeue_payout(settlement.pk)


def test_claim_is_won_only_once(make_due_settlement):
    settlement = make_due_settlement()
    now = timezone.now()

    assert services.claim_for_payout(settlement.pk, now=now) is True
    assert services.claim_for_payout(settlement.pk, now=now) is False


def test_single_payout_pays_one_settlement(make_due_settlement, payout_account, owner_user, stripe_mock):
    settlement = make_due_settlement()

    paid = services.process_single_payout(settlement.pk)

    assert paid.payout_status == Settlement.PayoutStatus.PAID
    kwargs = stripe_mock.transfer_create.call_args.kwargs
    assert kwargs["idempotency_key"] == f"settlement:{settlement.pk}:owner_payout_v1:a0"
    assert kwargs["amount"] == 18000
    with pytest.raises(errors.ConflictError):
        services.process_single_payout(settlement.pk)


def test_single_payout_without_account_keeps_schedule(make_due_settlement, stripe_mock):
    settlement = make_due_settlement()

    with pytest.raises(errors.StateError):
        services.process_single_payout(settlement.pk)

    settlement.refresh_from_db()
    assert settlement.payout_status == Settlement.PayoutStatus.SCHEDULED


def test_cancelled_booking_is_not_paid_out(make_due_settlement, payout_account, stripe_mock):
    settlement = make_due_settlement()
    settlement.booking.status = "cancelled"
    settlement.booking.save(update_fields=["status"])

    report = run_payout_batch()

    assert report.total == 0
    settlement.refresh_from_db()
    assert settlement.payout_status == Settlement.PayoutStatus.SCHEDULED
    stripe_mock.transfer_create.assert_not_called()


def test_task_runs_the_batch(make_due_settlement, payout_account, stripe_mock):
    make_due_settlement()

    result = process_batch_payouts.delay().get()

    assert result["successful"] == 1
    assert PayoutRun.objects.get(pk=result["runId"]).trigger == PayoutRun.Trigger.SCHEDULED


def test_staff_can_trigger_and_inspect_runs(api_client, make_due_settlement, payout_account, staff_user, renter_user, stripe_mock):
    make_due_settlement()

    api_client.force_authenticate(renter_user)
    assert api_client.post("/api/payments/payouts/run/").status_code == 403

    api_client.force_authenticate(staff_user)
    resp = api_client.post("/api/payments/payouts/run/")
    assert resp.status_code == 200, resp.data
    assert resp.data["successful"] == 1

    runs = api_client.get("/api/payments/payouts/runs/")
    assert runs.data[0]["trigger"] == PayoutRun.Trigger.MANUAL
    detail = api_client.get(f"/api/payments/payouts/runs/{resp.data['runId']}/")
    assert detail.data["successful"] == 1


def test_owner_share_of_cancellation_charge_joins_the_owner_transfer(
    make_due_settlement, paid_booking_factory, payout_account, product, owner_user, renter_user, stripe_mock
):
    CancellationTier.objects.create(product=product, hours_before_start=72, charge_percentage=Decimal("10"))
    rental = make_due_settlement()
    cancelled = paid_booking_factory(days=[_day(2)])
    booking_services.cancel_booking(cancelled.id, renter_user)
    share = Settlement.objects.get(booking=cancelled)
    assert share.cancellation_owner_amount == Decimal("9.00")
    Settlement.objects.filter(pk=share.pk).update(scheduled_payout_date=timezone.now() - timedelta(hours=1))

    report = run_payout_batch()

    assert (report.total, report.successful) == (2, 2)
    stripe_mock.transfer_create.assert_called_once()
    assert stripe_mock.transfer_create.call_args.kwargs["amount"] == 18900
    share.refresh_from_db()
    rental.refresh_from_db()
    assert share.payout_status == Settlement.PayoutStatus.PAID
    assert rental.payout_status == Settlement.PayoutStatus.PAID
    earning = Transaction.objects.get(settlement=share, kind=Transaction.Kind.OWNER_EARNING)
    assert earning.amount == Decimal("9.00")
    detail = next(row for row in report.details if row["settlementId"] == share.pk)
    assert detail["amount"] == "9.00"


def test_definite_transfer_failure_gets_a_fresh_key_after_requeue(
    make_due_settlement, payout_account, stripe_mock
):
    settlement = make_due_settlement()
    stripe_mock.transfer_create.side_effect = stripe.InvalidRequestError(
        "Insufficient funds in Stripe account.", param=None
    )

    run_payout_batch()

    settlement.refresh_from_db()
    assert settlement.payout_status == Settlement.PayoutStatus.FAILED
    assert settlement.payout_attempts == 1
    first_key = stripe_mock.transfer_create.call_args.kwargs["idempotency_key"]

    services.requeue_payout(settlement.pk)
    stripe_mock.transfer_create.side_effect = None
    report = run_payout_batch()

    assert report.successful == 1
    second_key = stripe_mock.transfer_create.call_args.kwargs["idempotency_key"]
    assert second_key != first_key


def test_single_payout_retry_after_definite_failure_uses_next_attempt_key(
    make_due_settlement, payout_account, stripe_mock
):
    settlement = make_due_settlement()
    stripe_mock.transfer_create.side_effect = stripe.InvalidRequestError(
        "Insufficient funds in Stripe account.", param=None
    )

    with pytest.raises(errors.ExternalGatewayError):
        services.process_single_payout(settlement.pk)

    settlement.refresh_from_db()
    assert settlement.payout_status == Settlement.PayoutStatus.SCHEDULED
    assert settlement.payout_attempts == 1

    stripe_mock.transfer_create.side_effect = None
    services.process_single_payout(settlement.pk)

    kwargs = stripe_mock.transfer_create.call_args.kwargs
    assert kwargs["idempotency_key"] == f"settlement:{settlement.pk}:owner_payout_v1:a1"

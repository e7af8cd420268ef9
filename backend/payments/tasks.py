from __future__ import annotations

import logging

from celery import shared_task

from payments.models import PayoutRun
from payments.payouts import run_payout_batch

logger = logging.getLogger(__name__)


@shared_task(name="payments.process_batch_payouts")
def process_batch_payouts(trigger: str = PayoutRun.Trigger.SCHEDULED):
    """
    Disburse every scheduled, due settlement grouped per owner.
    Safe to run repeatedly; only scheduled settlements are picked up.
    """
    report = run_payout_batch(trigger=trigger)
    return report.as_dict()

from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model

from .models import Transaction

User = get_user_model()


def log_transaction(
    *,
    user: User,
    booking,
    settlement=None,
    kind: str,
    amount: Decimal,
    currency: str | None = None,
    stripe_id: Optional[str] = None,
) -> Transaction:
    """
    Create and return a Transaction row.

    This is a thin helper; callers decide when money actually moved.
    """
    return Transaction.objects.create(
        user=user,
        booking=booking,
        settlement=settlement,
        kind=kind,
        amount=amount,
        currency=currency or settings.PLATFORM_CURRENCY,
        stripe_id=stripe_id,
    )


def has_transaction(*, booking, kind: str, stripe_id: Optional[str] = None) -> bool:
    """Return True when a ledger row of ``kind`` already exists for ``booking``."""
    queryset = Transaction.objects.filter(booking=booking, kind=kind)
    if stripe_id:
        queryset = queryset.filter(stripe_id=stripe_id)
    return queryset.exists()

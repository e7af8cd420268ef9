"""Stripe helpers for settlement charges, refunds and owner transfers."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe
from django.conf import settings

from core.errors import ExternalGatewayError

logger = logging.getLogger(__name__)
IDEMPOTENCY_VERSION = "v1"
AUTOMATIC_PAYMENT_METHODS_CONFIG = {"enabled": True, "allow_redirects": "never"}


class StripeConfigurationError(ExternalGatewayError):
    """Stripe is not configured correctly in the environment."""

    status_code = 503
    code = "gateway_unavailable"


class StripeTransientError(ExternalGatewayError):
    """Temporary Stripe/API issue that should be retried."""

    status_code = 503
    code = "gateway_retry"
    retryable = True


class StripePaymentError(ExternalGatewayError):
    """Permanent payment failure reported by Stripe."""

    status_code = 402
    code = "payment_failed"


def _get_stripe_api_key() -> str:
    """Return the configured Stripe API key or raise if missing."""
    api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not api_key:
        raise StripeConfigurationError("Stripe secret key not configured.")
    return api_key


def _to_cents(amount: Decimal) -> int:
    """Convert Decimal dollars to integer cents, rounding to the nearest cent."""
    cents = (amount * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def _env_label() -> str:
    return getattr(settings, "STRIPE_ENV", "dev") or "dev"


def _object_value(obj: Any, field: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or a plain dict payload."""
    if isinstance(obj, dict):
        return obj.get(field, default)
    value = getattr(obj, field, None)
    if value is None and hasattr(obj, "get"):
        value = obj.get(field, default)
    return default if value is None else value


def _handle_stripe_error(exc: stripe.StripeError) -> None:
    """Map Stripe SDK errors onto internal exception types."""
    if isinstance(exc, stripe.CardError):
        message = exc.user_message or "Your card was declined."
        raise StripePaymentError(message) from exc
    if isinstance(
        exc,
        (
            stripe.RateLimitError,
            stripe.APIConnectionError,
            stripe.APIError,
        ),
    ):
        raise StripeTransientError("Temporary Stripe error, please retry.") from exc
    if isinstance(exc, (stripe.AuthenticationError, stripe.PermissionError)):
        raise StripeConfigurationError("Stripe credentials are invalid or unauthorized.") from exc
    if isinstance(exc, stripe.InvalidRequestError):
        raise StripePaymentError(exc.user_message or "Invalid payment request.") from exc
    raise StripePaymentError(exc.user_message or "Stripe payment failure.") from exc


def retrieve_payment_intent(intent_id: str) -> Any:
    """Fetch a PaymentIntent by id."""
    stripe.api_key = _get_stripe_api_key()
    try:
        return stripe.PaymentIntent.retrieve(intent_id)
    except stripe.StripeError as exc:
        _handle_stripe_error(exc)


def _retrieve_existing_intent(intent_id: str) -> Any | None:
    """Return an existing PaymentIntent, or None if Stripe no longer knows it."""
    if not intent_id:
        return None
    try:
        return stripe.PaymentIntent.retrieve(intent_id)
    except stripe.InvalidRequestError as exc:
        if getattr(exc, "code", "") == "resource_missing":
            logger.info("Stripe PaymentIntent %s missing; will recreate.", intent_id)
            return None
        _handle_stripe_error(exc)
    except stripe.StripeError as exc:
        _handle_stripe_error(exc)
    return None


def create_payment_intent(*, settlement) -> tuple[str, str]:
    """
    Create or reuse the renter charge PaymentIntent for a settlement.

    Returns ``(intent_id, client_secret)``.
    """
    amount = Decimal(settlement.total_amount)
    if amount <= Decimal("0"):
        raise StripePaymentError("Rental charge must be greater than zero.")
    amount_cents = _to_cents(amount)

    stripe.api_key = _get_stripe_api_key()
    intent = _retrieve_existing_intent(settlement.payment_intent_id)
    if intent is None:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=settlement.currency,
                automatic_payment_methods={**AUTOMATIC_PAYMENT_METHODS_CONFIG},
                capture_method="automatic",
                metadata={
                    "kind": "booking_charge",
                    "booking_id": str(settlement.booking_id),
                    "settlement_id": str(settlement.id),
                    "env": _env_label(),
                },
                idempotency_key=(
                    f"settlement:{settlement.id}:{IDEMPOTENCY_VERSION}:charge:{amount_cents}"
                ),
            )
        except stripe.StripeError as exc:
            _handle_stripe_error(exc)

    return _object_value(intent, "id", ""), _object_value(intent, "client_secret", "")


def create_refund(*, settlement, amount: Decimal) -> str:
    """Refund ``amount`` of the settlement's captured charge; returns the refund id."""
    if not settlement.payment_intent_id:
        raise StripePaymentError("Settlement has no captured charge to refund.")
    amount_cents = _to_cents(Decimal(amount))
    stripe.api_key = _get_stripe_api_key()
    try:
        refund = stripe.Refund.create(
            payment_intent=settlement.payment_intent_id,
            amount=amount_cents,
            metadata={
                "kind": "booking_cancellation_refund",
                "booking_id": str(settlement.booking_id),
                "settlement_id": str(settlement.id),
                "env": _env_label(),
            },
            idempotency_key=(
                f"settlement:{settlement.id}:{IDEMPOTENCY_VERSION}:refund:{amount_cents}"
            ),
        )
    except stripe.StripeError as exc:
        _handle_stripe_error(exc)
    refund_id = _object_value(refund, "id", "")
    logger.info(
        "stripe: refund created",
        extra={"settlement_id": settlement.id, "refund_id": refund_id, "amount_cents": amount_cents},
    )
    return refund_id


def create_transfer(
    *,
    destination: str,
    amount: Decimal,
    currency: str,
    description: str,
    metadata: dict[str, str],
    idempotency_key: str,
    transfer_group: str | None = None,
) -> str:
    """Transfer ``amount`` to a connected account; returns the transfer id."""
    amount_cents = _to_cents(Decimal(amount))
    if amount_cents <= 0:
        raise StripePaymentError("Transfer amount must be greater than zero.")
    stripe.api_key = _get_stripe_api_key()
    params: dict[str, Any] = {
        "amount": amount_cents,
        "currency": currency,
        "destination": destination,
        "description": description,
        "metadata": {**metadata, "env": _env_label()},
        "idempotency_key": idempotency_key,
    }
    if transfer_group:
        params["transfer_group"] = transfer_group
    try:
        transfer = stripe.Transfer.create(**params)
    except stripe.StripeError as exc:
        _handle_stripe_error(exc)
    return _object_value(transfer, "id", "")


def construct_webhook_event(payload: bytes, sig_header: str) -> Any:
    """Verify and parse a webhook payload; raises ValueError or SignatureVerificationError."""
    return stripe.Webhook.construct_event(
        payload=payload,
        sig_header=sig_header,
        secret=getattr(settings, "STRIPE_WEBHOOK_SECRET", ""),
    )

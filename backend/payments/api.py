"""Payment, settlement and payout API endpoints."""

from __future__ import annotations

import logging

import stripe
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import (
    action,
    api_view,
    authentication_classes,
    permission_classes,
)
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response

from core import errors

from . import services, stripe_api
from .commission import default_provider, publish_policy
from .filters import SettlementFilter
from .models import PayoutRun, Settlement
from .payouts import run_payout_batch
from .serializers import (
    CommissionPolicySerializer,
    CommissionPolicyUpdateSerializer,
    ConfirmPaymentSerializer,
    PayoutRunSerializer,
    SettlementSerializer,
)

logger = logging.getLogger(__name__)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def create_payment_intent(request, booking_id: int):
    """Open the renter's charge and hand back the Stripe client secret."""
    settlement = services.create_payment(booking_id, request.user)
    return Response(
        {
            "settlementId": settlement.id,
            "clientSecret": settlement.client_secret,
            "paymentIntentId": settlement.payment_intent_id,
            "amount": str(settlement.total_amount),
            "currency": settlement.currency,
        },
        status=status.HTTP_201_CREATED,
    )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def confirm_payment(request):
    serializer = ConfirmPaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    settlement = services.confirm_payment(
        serializer.validated_data["payment_intent_id"],
        actor=request.user,
    )
    return Response(SettlementSerializer(settlement).data, status=status.HTTP_200_OK)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def stripe_webhook(request):
    """Handle Stripe webhook callbacks for booking charges."""
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    try:
        event = stripe_api.construct_webhook_event(request.body, sig_header)
    except ValueError:
        return Response(status=status.HTTP_400_BAD_REQUEST)
    except stripe.SignatureVerificationError:
        return Response(status=status.HTTP_400_BAD_REQUEST)

    event_type = event.get("type")
    data_object = event.get("data", {}).get("object", {}) or {}
    metadata = data_object.get("metadata") or {}

    if event_type == "payment_intent.succeeded" and metadata.get("kind") == "booking_charge":
        intent_id = data_object.get("id", "")
        try:
            services.confirm_payment(intent_id, intent=data_object)
        except errors.NotFoundError:
            logger.info("stripe_webhook: no settlement for intent %s", intent_id)
        except errors.ExternalGatewayError:
            raise
        except errors.EngineError as exc:
            logger.warning(
                "stripe_webhook: could not confirm payment",
                extra={"payment_intent_id": intent_id, "error": exc.message},
            )
    return Response(status=status.HTTP_200_OK)


class SettlementViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Settlements visible to their owner, renter, or staff."""

    serializer_class = SettlementSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = SettlementFilter
    ordering_fields = ("created_at", "scheduled_payout_date")

    def get_queryset(self):
        user = self.request.user
        queryset = Settlement.objects.select_related("booking").order_by("-created_at")
        if user.is_staff:
            return queryset
        return queryset.filter(Q(owner=user) | Q(renter=user))

    @action(detail=True, methods=["post"], permission_classes=[IsAdminUser])
    def payout(self, request, pk=None):
        """Pay out one scheduled settlement right away."""
        settlement = services.process_single_payout(int(pk))
        return Response(self.get_serializer(settlement).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], permission_classes=[IsAdminUser])
    def requeue(self, request, pk=None):
        """Put a failed payout back on the schedule."""
        settlement = services.requeue_payout(int(pk))
        return Response(self.get_serializer(settlement).data, status=status.HTTP_200_OK)


@api_view(["POST"])
@permission_classes([IsAdminUser])
def trigger_payout_batch(request):
    """Run the batch payout now; same semantics as the nightly job."""
    report = run_payout_batch(trigger=PayoutRun.Trigger.MANUAL, requested_by=request.user)
    return Response(report.as_dict(), status=status.HTTP_200_OK)


@api_view(["GET"])
@permission_classes([IsAdminUser])
def payout_runs(request):
    runs = PayoutRun.objects.all()[:50]
    return Response(PayoutRunSerializer(runs, many=True).data)


@api_view(["GET"])
@permission_classes([IsAdminUser])
def payout_run_detail(request, run_id: int):
    run = get_object_or_404(PayoutRun, pk=run_id)
    return Response(PayoutRunSerializer(run).data)


@api_view(["GET", "POST"])
@permission_classes([IsAdminUser])
def commission_policy(request):
    """Read the current commission policy or publish a new version."""
    if request.method == "POST":
        serializer = CommissionPolicyUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        policy = publish_policy(
            commission_type=serializer.validated_data["commission_type"],
            value=serializer.validated_data["value"],
            created_by=request.user,
        )
        return Response(CommissionPolicySerializer(policy).data, status=status.HTTP_201_CREATED)
    return Response(CommissionPolicySerializer(default_provider.current()).data)

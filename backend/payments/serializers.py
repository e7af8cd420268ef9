from rest_framework import serializers

from .models import CommissionPolicy, CommissionType, PayoutRun, Settlement


class SettlementSerializer(serializers.ModelSerializer):
    class Meta:
        model = Settlement
        fields = (
            "id",
            "booking",
            "owner",
            "renter",
            "currency",
            "total_amount",
            "commission_type",
            "commission_value",
            "commission_amount",
            "owner_payout_amount",
            "payment_status",
            "payout_status",
            "scheduled_payout_date",
            "payment_intent_id",
            "paid_at",
            "transfer_id",
            "payout_at",
            "payout_error",
            "cancellation_charge",
            "cancellation_charge_percentage",
            "refund_amount",
            "refunded_at",
            "cancelled_at",
            "cancellation_commission_amount",
            "cancellation_owner_amount",
            "created_at",
        )
        read_only_fields = fields


class CommissionPolicySerializer(serializers.ModelSerializer):
    value = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = CommissionPolicy
        fields = (
            "id",
            "commission_type",
            "fixed_amount",
            "percentage",
            "value",
            "is_active",
            "created_at",
        )
        read_only_fields = fields


class CommissionPolicyUpdateSerializer(serializers.Serializer):
    commission_type = serializers.ChoiceField(choices=CommissionType.choices)
    value = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)


class ConfirmPaymentSerializer(serializers.Serializer):
    payment_intent_id = serializers.CharField(max_length=120)


class PayoutRunSerializer(serializers.ModelSerializer):
    class Meta:
        model = PayoutRun
        fields = (
            "id",
            "trigger",
            "status",
            "total",
            "successful",
            "failed",
            "skipped",
            "details",
            "started_at",
            "finished_at",
        )
        read_only_fields = fields

"""Serializers for booking-related API endpoints."""

from __future__ import annotations

from rest_framework import serializers

from payments.models import Settlement

from .models import Booking, ReturnPhoto


class ReturnPhotoSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReturnPhoto
        fields = (
            "id",
            "url",
            "key",
            "status",
            "rejection_reason",
            "uploaded_at",
            "reviewed_at",
        )
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    """Serialize Booking instances for API usage."""

    product_title = serializers.ReadOnlyField(source="product.title")
    requested_days = serializers.SerializerMethodField()
    return_photos = ReturnPhotoSerializer(many=True, read_only=True)
    settlement_id = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = (
            "id",
            "product",
            "product_title",
            "owner",
            "renter",
            "status",
            "payment_status",
            "requested_days",
            "start_day",
            "end_day",
            "daily_price",
            "total_amount",
            "delivery_type",
            "delivery_info",
            "all_return_photos_verified",
            "return_photos",
            "cancellation_reason",
            "cancelled_by",
            "cancelled_at",
            "settlement_id",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_requested_days(self, obj: Booking) -> list[str]:
        return [day.isoformat() for day in obj.requested_days]

    def get_settlement_id(self, obj: Booking) -> int | None:
        return Settlement.objects.filter(booking_id=obj.pk).values_list("pk", flat=True).first()


class AvailabilityRequestSerializer(serializers.Serializer):
    product = serializers.IntegerField(min_value=1)
    days = serializers.ListField(allow_empty=False)


class BookingCreateSerializer(AvailabilityRequestSerializer):
    delivery_type = serializers.ChoiceField(
        choices=Booking.DeliveryType.choices,
        default=Booking.DeliveryType.PICKUP,
    )
    delivery_info = serializers.DictField(required=False, default=dict)


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.Status.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class ReturnPhotoUploadSerializer(serializers.Serializer):
    url = serializers.URLField(max_length=1024)
    key = serializers.CharField(required=False, allow_blank=True, default="", max_length=512)


class ReturnPhotoReviewSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=("approve", "reject"))
    reason = serializers.CharField(required=False, allow_blank=True, default="")

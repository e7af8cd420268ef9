"""API viewsets and permissions for bookings."""

from __future__ import annotations

import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core import errors
from products.models import Product

from . import availability, photos, services
from .models import Booking
from .serializers import (
    AvailabilityRequestSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    CancelSerializer,
    ReturnPhotoReviewSerializer,
    ReturnPhotoSerializer,
    ReturnPhotoUploadSerializer,
    StatusUpdateSerializer,
)

logger = logging.getLogger(__name__)


class IsBookingParticipant(permissions.BasePermission):
    """Allow access only to users tied to the booking."""

    def has_permission(self, request, view) -> bool:
        """Always allow; actual checks happen at object level."""
        return True

    def has_object_permission(self, request, view, obj: Booking) -> bool:
        """Check that the user is the booking owner or renter."""
        user_id = getattr(request.user, "id", None)
        return user_id in (obj.owner_id, obj.renter_id)


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Booking creation, lifecycle transitions and return photos."""

    serializer_class = BookingSerializer
    permission_classes = (permissions.IsAuthenticated, IsBookingParticipant)
    filterset_fields = ("status", "payment_status", "product")
    ordering_fields = ("created_at", "start_day")

    def get_queryset(self):
        """Restrict bookings to the authenticated participant."""
        user = self.request.user
        if not user.is_authenticated:
            return Booking.objects.none()
        return (
            Booking.objects.select_related("product", "owner", "renter")
            .prefetch_related("days", "return_photos")
            .filter(Q(owner=user) | Q(renter=user))
            .order_by("-created_at")
        )

    def get_object(self):
        """Fetch a single booking and enforce participant permissions."""
        obj = get_object_or_404(
            Booking.objects.select_related("product", "owner", "renter"),
            pk=self.kwargs["pk"],
        )
        self.check_object_permissions(self.request, obj)
        return obj

    def _booking_response(self, booking_id: int, *, status_code=status.HTTP_200_OK) -> Response:
        booking = self.get_queryset().get(pk=booking_id)
        return Response(BookingSerializer(booking).data, status=status_code)

    def create(self, request, *args, **kwargs):
        """Create a pending booking for the authenticated renter."""
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = services.create_booking(
            product_id=data["product"],
            renter=request.user,
            days=data["days"],
            delivery_type=data["delivery_type"],
            delivery_info=data.get("delivery_info") or {},
        )
        return self._booking_response(booking.id, status_code=status.HTTP_201_CREATED)

    @action(
        detail=False,
        methods=["post"],
        url_path="availability",
        permission_classes=[permissions.AllowAny],
    )
    def availability(self, request, *args, **kwargs):
        """Per-day availability of a product for the requested days."""
        serializer = AvailabilityRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = Product.objects.bookable().filter(pk=serializer.validated_data["product"]).first()
        if product is None:
            raise errors.NotFoundError("Product not found.")
        result = availability.check_availability(product, serializer.validated_data["days"])
        return Response(result.as_dict(), status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="status")
    def update_status(self, request, *args, **kwargs):
        """Move the booking along its lifecycle (owner-only)."""
        booking: Booking = self.get_object()
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]
        reason = serializer.validated_data["reason"]
        if new_status == Booking.Status.CANCELLED:
            outcome = services.cancel_booking(booking.id, request.user, reason=reason)
            return Response(
                {**outcome.as_dict(), "booking": BookingSerializer(outcome.booking).data},
                status=status.HTTP_200_OK,
            )
        services.update_booking_status(booking.id, request.user, new_status)
        return self._booking_response(booking.id)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, *args, **kwargs):
        """Cancel a booking (owner or renter)."""
        booking: Booking = self.get_object()
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        outcome = services.cancel_booking(
            booking.id,
            request.user,
            reason=serializer.validated_data["reason"],
        )
        return Response(outcome.as_dict(), status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="return-photos")
    def upload_return_photo(self, request, *args, **kwargs):
        """Renter hands in a return photo (already stored, referenced by url)."""
        booking: Booking = self.get_object()
        serializer = ReturnPhotoUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        photo = photos.upload_return_photo(
            booking.id,
            request.user,
            url=serializer.validated_data["url"],
            key=serializer.validated_data["key"],
        )
        return Response(ReturnPhotoSerializer(photo).data, status=status.HTTP_201_CREATED)

    @action(
        detail=True,
        methods=["post"],
        url_path=r"return-photos/(?P<photo_id>\d+)/review",
    )
    def review_return_photo(self, request, photo_id=None, *args, **kwargs):
        """Owner approves or rejects a pending return photo."""
        booking: Booking = self.get_object()
        serializer = ReturnPhotoReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        photos.review_return_photo(
            booking.id,
            int(photo_id),
            request.user,
            action=serializer.validated_data["action"],
            reason=serializer.validated_data["reason"],
        )
        return self._booking_response(booking.id)

    @action(
        detail=True,
        methods=["post"],
        url_path=r"return-photos/(?P<photo_id>\d+)/reupload",
    )
    def reupload_return_photo(self, request, photo_id=None, *args, **kwargs):
        """Renter replaces a rejected return photo."""
        booking: Booking = self.get_object()
        serializer = ReturnPhotoUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        photo = photos.reupload_return_photo(
            booking.id,
            int(photo_id),
            request.user,
            url=serializer.validated_data["url"],
            key=serializer.validated_data["key"],
        )
        return Response(ReturnPhotoSerializer(photo).data, status=status.HTTP_200_OK)

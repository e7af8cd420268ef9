"""Database models for rental bookings."""

from __future__ import annotations

from datetime import date

from django.conf import settings
from django.db import models

from products.models import Product


class Booking(models.Model):
    """A renter's reservation of one unit of a product for a set of calendar days."""

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        CONFIRMED = "confirmed", "confirmed"
        ONGOING = "ongoing", "ongoing"
        COMPLETED = "completed", "completed"
        CANCELLED = "cancelled", "cancelled"

    class PaymentStatus(models.TextChoices):
        UNPAID = "unpaid", "unpaid"
        PAID = "paid", "paid"
        REFUNDED = "refunded", "refunded"

    class DeliveryType(models.TextChoices):
        PICKUP = "pickup", "pickup"
        DELIVERY = "delivery", "delivery"

    class CancelledBy(models.TextChoices):
        RENTER = "renter", "renter"
        OWNER = "owner", "owner"

    NON_TERMINAL_STATUSES = (Status.PENDING, Status.CONFIRMED, Status.ONGOING)
    TERMINAL_STATUSES = (Status.COMPLETED, Status.CANCELLED)

    product = models.ForeignKey(
        Product,
        related_name="bookings",
        on_delete=models.CASCADE,
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_owner",
        on_delete=models.CASCADE,
    )
    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_renter",
        on_delete=models.CASCADE,
    )
    start_day = models.DateField(help_text="Earliest requested day.")
    end_day = models.DateField(help_text="Latest requested day.")
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    payment_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
    )
    daily_price = models.DecimalField(max_digits=10, decimal_places=2)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    delivery_type = models.CharField(
        max_length=16,
        choices=DeliveryType.choices,
        default=DeliveryType.PICKUP,
    )
    delivery_info = models.JSONField(default=dict, blank=True)
    all_return_photos_verified = models.BooleanField(default=False)
    cancellation_reason = models.TextField(blank=True, default="")
    cancelled_by = models.CharField(
        max_length=16,
        choices=CancelledBy.choices,
        blank=True,
        default="",
    )
    cancellation_initiated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="+",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["product", "status"], name="bookings_product_status_idx"),
            models.Index(fields=["renter", "status"], name="bookings_renter_status_idx"),
            models.Index(fields=["owner", "status"], name="bookings_owner_status_idx"),
        ]

    def __str__(self) -> str:
        """Return a human-readable representation."""
        return f"Booking #{self.pk} for {self.product_id} ({self.status})"

    @property
    def requested_days(self) -> list[date]:
        """Return the distinct requested days in calendar order."""
        return [row.day for row in self.days.order_by("day")]

    def is_active(self) -> bool:
        """Return True while the booking still consumes inventory."""
        return self.status in self.NON_TERMINAL_STATUSES

    def is_terminal(self) -> bool:
        """Return True if the booking reached a terminal state."""
        return self.status in self.TERMINAL_STATUSES


class BookingDay(models.Model):
    """One requested calendar day of a booking; a booking demands one unit per day."""

    booking = models.ForeignKey(
        Booking,
        related_name="days",
        on_delete=models.CASCADE,
    )
    product = models.ForeignKey(
        Product,
        related_name="booking_days",
        on_delete=models.CASCADE,
    )
    day = models.DateField()

    class Meta:
        ordering = ["day"]
        constraints = [
            models.UniqueConstraint(fields=["booking", "day"], name="uniq_booking_day"),
        ]
        indexes = [
            models.Index(fields=["product", "day"], name="bookings_day_product_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.day.isoformat()} for booking #{self.booking_id}"


class ProductDayReservation(models.Model):
    """Count of units held by non-terminal bookings for a product on one day.

    Rows are only ever changed with conditional ``UPDATE`` statements so the
    ``reserved`` counter can never exceed the product's stock.
    """

    product = models.ForeignKey(
        Product,
        related_name="day_reservations",
        on_delete=models.CASCADE,
    )
    day = models.DateField()
    reserved = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["product", "day"], name="uniq_product_day_reservation"),
        ]

    def __str__(self) -> str:
        return f"{self.product_id}@{self.day.isoformat()}: {self.reserved}"


class ReturnPhoto(models.Model):
    """Photo uploaded by the renter as proof of return; reviewed by the owner."""

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        APPROVED = "approved", "approved"
        REJECTED = "rejected", "rejected"

    booking = models.ForeignKey(
        Booking,
        related_name="return_photos",
        on_delete=models.CASCADE,
    )
    url = models.URLField(max_length=1024)
    key = models.CharField(max_length=512, blank=True, default="")
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    rejection_reason = models.TextField(blank=True, default="")
    uploaded_at = models.DateTimeField()
    reviewed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["booking", "status"], name="bookings_photo_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Return photo {self.pk} for booking #{self.booking_id} ({self.status})"

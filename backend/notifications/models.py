from django.conf import settings
from django.db import models


class UserNotification(models.Model):
    """In-app notification shown in a user's inbox."""

    class Kind(models.TextChoices):
        BOOKING = "booking", "Booking"
        RETURN_PHOTO = "return_photo", "Return photo"
        PAYMENT = "payment", "Payment"
        PAYOUT = "payout", "Payout"
        GENERAL = "general", "General"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    kind = models.CharField(max_length=32, choices=Kind.choices, default=Kind.GENERAL)
    title = models.CharField(max_length=200)
    body = models.TextField(blank=True)
    booking_id = models.IntegerField(null=True, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "is_read", "created_at"], name="notification_user_read_idx"),
            models.Index(fields=["booking_id", "created_at"], name="notification_booking_idx"),
        ]
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.kind}: {self.title}"

from __future__ import annotations

from datetime import date

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils.dateparse import parse_date


class ProductQuerySet(models.QuerySet):
    def bookable(self):
        return self.filter(is_active=True, is_deleted=False)


class Product(models.Model):
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="products",
    )
    title = models.CharField(max_length=140)
    description = models.TextField(blank=True)
    daily_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(0)],
        default=0,
    )
    total_stock_units = models.PositiveIntegerField(
        default=1,
        help_text="Number of interchangeable physical units that can be rented per day.",
    )
    all_days_available = models.BooleanField(
        default=True,
        help_text="When disabled only the days listed in publishable_days can be booked.",
    )
    publishable_days = models.JSONField(
        default=list,
        blank=True,
        help_text="ISO dates (YYYY-MM-DD) open for booking when all_days_available is off.",
    )
    is_active = models.BooleanField(default=True)
    is_deleted = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProductQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def clean(self):
        if not self.title or len(self.title.strip()) < 3:
            raise ValidationError("Title too short")
        for value in self.publishable_days or []:
            if not isinstance(value, str) or parse_date(value) is None:
                raise ValidationError(f"Invalid publishable day: {value!r}")

    def publishable_day_set(self) -> set[date] | None:
        """Return the explicit publishable days, or None when every day is open."""
        if self.all_days_available:
            return None
        days: set[date] = set()
        for value in self.publishable_days or []:
            parsed = parse_date(value) if isinstance(value, str) else None
            if parsed is not None:
                days.add(parsed)
        return days

    def __str__(self) -> str:
        return f"{self.title} (#{self.pk})"


class CancellationTier(models.Model):
    """Penalty applied when a renter cancels within ``hours_before_start`` of the start."""

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name="cancellation_tiers",
    )
    hours_before_start = models.PositiveIntegerField()
    charge_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )

    class Meta:
        ordering = ["-hours_before_start"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "hours_before_start"],
                name="uniq_cancellation_tier_threshold",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.charge_percentage}% within {self.hours_before_start}h"

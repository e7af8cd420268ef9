from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from core import errors


class Transaction(models.Model):
    class Kind(models.TextChoices):
        BOOKING_CHARGE = "BOOKING_CHARGE", "Booking charge"
        REFUND = "REFUND", "Refund"
        OWNER_EARNING = "OWNER_EARNING", "Owner earning"
        PLATFORM_FEE = "PLATFORM_FEE", "Platform fee"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="transactions",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="transactions",
    )
    settlement = models.ForeignKey(
        "payments.Settlement",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    kind = models.CharField(max_length=64, choices=Kind.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=8, default="usd")
    stripe_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        help_text="Related Stripe PaymentIntent / Refund / Transfer id.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.user} {self.kind} {self.amount} {self.currency}"


class OwnerPayoutAccount(models.Model):
    """Stripe Connect account that receives an owner's payouts."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payout_account",
    )
    stripe_account_id = models.CharField(max_length=255, blank=True, default="")
    payouts_enabled = models.BooleanField(default=False)
    charges_enabled = models.BooleanField(default=False)
    is_fully_onboarded = models.BooleanField(
        default=False,
        help_text="Charges and payouts enabled, no disabled_reason.",
    )
    last_synced_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-last_synced_at", "user_id"]

    def __str__(self) -> str:
        return f"{self.user} - {self.stripe_account_id}"

    @property
    def is_payout_ready(self) -> bool:
        """True when transfers can be sent to this account."""
        return bool(self.stripe_account_id) and bool(self.payouts_enabled)


class CommissionType(models.TextChoices):
    FIXED = "fixed", "fixed"
    PERCENTAGE = "percentage", "percentage"


class CommissionPolicy(models.Model):
    """Versioned platform commission; every change is stored as a new row."""

    commission_type = models.CharField(
        max_length=16,
        choices=CommissionType.choices,
        default=CommissionType.PERCENTAGE,
    )
    fixed_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(0)],
    )
    percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("10.00"),
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="commission_policies_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["is_active", "created_at"], name="payments_commission_act_idx"),
        ]
        verbose_name_plural = "commission policies"

    def __str__(self) -> str:
        if self.commission_type == CommissionType.FIXED:
            return f"fixed {self.fixed_amount}"
        return f"{self.percentage}%"

    @property
    def value(self) -> Decimal:
        if self.commission_type == CommissionType.FIXED:
            return self.fixed_amount
        return self.percentage

    def _has_versioning_changes(self, existing: "CommissionPolicy") -> bool:
        return (
            existing.commission_type != self.commission_type
            or existing.fixed_amount != self.fixed_amount
            or existing.percentage != self.percentage
            or existing.is_active != self.is_active
        )

    def save(self, *args, **kwargs):
        if self.pk is not None:
            using = kwargs.get("using") or self._state.db
            existing = type(self).objects.using(using).filter(pk=self.pk).first()
            if existing is not None:
                if not self._has_versioning_changes(existing):
                    return
                self.pk = None
                self._state.adding = True
                kwargs.pop("force_update", None)
                kwargs.pop("update_fields", None)
                kwargs["force_insert"] = True
        super().save(*args, **kwargs)


class Settlement(models.Model):
    """Money owed and moved for one booking: charge, commission, refund, payout."""

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "pending"
        PAID = "paid", "paid"
        REFUNDED = "refunded", "refunded"
        PARTIALLY_REFUNDED = "partially_refunded", "partially refunded"
        FAILED = "failed", "failed"

    class PayoutStatus(models.TextChoices):
        PENDING = "pending", "pending"
        SCHEDULED = "scheduled", "scheduled"
        PROCESSING = "processing", "processing"
        PAID = "paid", "paid"
        FAILED = "failed", "failed"

    SNAPSHOT_FIELDS = (
        "total_amount",
        "commission_type",
        "commission_value",
        "commission_amount",
        "owner_payout_amount",
    )

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="settlement",
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="settlements_as_owner",
    )
    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="settlements_as_renter",
    )
    commission_policy = models.ForeignKey(
        CommissionPolicy,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="settlements",
        help_text="Policy version the snapshot was taken from (informational).",
    )
    currency = models.CharField(max_length=8, default="usd")
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    commission_type = models.CharField(max_length=16, choices=CommissionType.choices)
    commission_value = models.DecimalField(max_digits=10, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=12, decimal_places=2)
    owner_payout_amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_status = models.CharField(
        max_length=24,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payout_status = models.CharField(
        max_length=16,
        choices=PayoutStatus.choices,
        default=PayoutStatus.PENDING,
    )
    scheduled_payout_date = models.DateTimeField(null=True, blank=True)
    payment_intent_id = models.CharField(max_length=120, blank=True, default="")
    client_secret = models.CharField(max_length=255, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    transfer_id = models.CharField(max_length=120, blank=True, default="")
    payout_at = models.DateTimeField(null=True, blank=True)
    payout_error = models.TextField(blank=True, default="")
    cancellation_charge = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    cancellation_charge_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    refund_id = models.CharField(max_length=120, blank=True, default="")
    refunded_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_commission_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    cancellation_owner_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Owner share of the retained cancellation charge, paid in the payout batch.",
    )
    payout_attempts = models.PositiveIntegerField(
        default=0,
        help_text="Failed transfer attempts; part of the transfer idempotency key.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["payout_status", "scheduled_payout_date"],
                name="payments_settle_due_idx",
            ),
            models.Index(fields=["owner", "payout_status"], name="payments_settle_owner_idx"),
            models.Index(fields=["payment_intent_id"], name="payments_settle_intent_idx"),
        ]

    def __str__(self) -> str:
        return f"Settlement #{self.pk} for booking #{self.booking_id} ({self.payment_status}/{self.payout_status})"

    @property
    def payable_amount(self) -> Decimal:
        """What the owner receives at payout: the rental share, or the cancellation share."""
        if self.cancelled_at is not None:
            return self.cancellation_owner_amount
        return self.owner_payout_amount

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_snapshot = {
            name: getattr(instance, name)
            for name in cls.SNAPSHOT_FIELDS
            if name in field_names
        }
        return instance

    def save(self, *args, **kwargs):
        loaded = getattr(self, "_loaded_snapshot", None)
        update_fields = kwargs.get("update_fields")
        if loaded and not self._state.adding:
            for name, original in loaded.items():
                if update_fields is not None and name not in update_fields:
                    continue
                if getattr(self, name) != original:
                    raise errors.StateError(f"Settlement {name} is immutable once recorded.")
        super().save(*args, **kwargs)
        self._loaded_snapshot = {name: getattr(self, name) for name in self.SNAPSHOT_FIELDS}


class PayoutRun(models.Model):
    """One execution of the batch payout job."""

    class Trigger(models.TextChoices):
        SCHEDULED = "scheduled", "scheduled"
        MANUAL = "manual", "manual"

    class Status(models.TextChoices):
        RUNNING = "running", "running"
        SUCCEEDED = "succeeded", "succeeded"
        FAILED = "failed", "failed"

    trigger = models.CharField(max_length=16, choices=Trigger.choices, default=Trigger.SCHEDULED)
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="payout_runs_requested",
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.RUNNING)
    total = models.PositiveIntegerField(default=0)
    successful = models.PositiveIntegerField(default=0)
    failed = models.PositiveIntegerField(default=0)
    skipped = models.PositiveIntegerField(default=0)
    details = models.JSONField(default=list, blank=True)
    error = models.TextField(blank=True, default="")
    started_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-started_at"]
        indexes = [
            models.Index(fields=["status", "started_at"], name="payments_payoutrun_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Payout run #{self.pk} ({self.status})"

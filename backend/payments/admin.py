from django.contrib import admin

from .models import CommissionPolicy, OwnerPayoutAccount, PayoutRun, Settlement, Transaction


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "booking",
        "owner",
        "total_amount",
        "commission_amount",
        "owner_payout_amount",
        "payment_status",
        "payout_status",
        "scheduled_payout_date",
    )
    list_filter = ("payment_status", "payout_status", "commission_type")
    search_fields = ("id", "booking__id", "owner__username", "payment_intent_id", "transfer_id")
    readonly_fields = Settlement.SNAPSHOT_FIELDS


@admin.register(CommissionPolicy)
class CommissionPolicyAdmin(admin.ModelAdmin):
    list_display = ("id", "commission_type", "fixed_amount", "percentage", "is_active", "created_at")
    list_filter = ("commission_type", "is_active")


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "booking", "kind", "amount", "currency", "stripe_id", "created_at")
    list_filter = ("kind",)


@admin.register(OwnerPayoutAccount)
class OwnerPayoutAccountAdmin(admin.ModelAdmin):
    list_display = ("user", "stripe_account_id", "payouts_enabled", "is_fully_onboarded")


@admin.register(PayoutRun)
class PayoutRunAdmin(admin.ModelAdmin):
    list_display = ("id", "trigger", "status", "total", "successful", "failed", "skipped", "started_at")
    list_filter = ("trigger", "status")

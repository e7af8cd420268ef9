from django.contrib import admin

from .models import CancellationTier, Product


class CancellationTierInline(admin.TabularInline):
    model = CancellationTier
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "title",
        "owner",
        "daily_price",
        "total_stock_units",
        "all_days_available",
        "is_active",
        "is_deleted",
    )
    list_filter = ("is_active", "is_deleted", "all_days_available")
    search_fields = ("title", "owner__username")
    inlines = [CancellationTierInline]

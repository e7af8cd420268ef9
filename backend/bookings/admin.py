from django.contrib import admin

from .models import Booking, BookingDay, ProductDayReservation, ReturnPhoto


class BookingDayInline(admin.TabularInline):
    model = BookingDay
    extra = 0
    readonly_fields = ("day", "product")


class ReturnPhotoInline(admin.TabularInline):
    model = ReturnPhoto
    extra = 0
    readonly_fields = ("uploaded_at", "reviewed_at")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "product",
        "renter",
        "owner",
        "status",
        "payment_status",
        "start_day",
        "end_day",
        "all_return_photos_verified",
    )
    list_filter = ("status", "payment_status", "all_return_photos_verified")
    search_fields = ("id", "product__title", "renter__username", "owner__username")
    inlines = [BookingDayInline, ReturnPhotoInline]


@admin.register(ProductDayReservation)
class ProductDayReservationAdmin(admin.ModelAdmin):
    list_display = ("product", "day", "reserved", "updated_at")
    list_filter = ("day",)

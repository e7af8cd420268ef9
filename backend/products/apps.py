from django.apps import AppConfig


class ProductsConfig(AppConfig):
    """Inventory facet of the catalog consumed by bookings and payments."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "products"

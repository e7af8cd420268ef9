from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Settlements, commission policy, ledger and owner payouts."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"

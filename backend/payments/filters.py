import django_filters

from .models import Settlement


class SettlementFilter(django_filters.FilterSet):
    scheduled_before = django_filters.IsoDateTimeFilter(
        field_name="scheduled_payout_date",
        lookup_expr="lte",
    )

    class Meta:
        model = Settlement
        fields = ["payment_status", "payout_status", "owner", "booking"]

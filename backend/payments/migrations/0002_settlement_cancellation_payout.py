from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="settlement",
            name="cancelled_at",
            field=models.DateTimeField(blank=True, null=True),
        ),
        migrations.AddField(
            model_name="settlement",
            name="cancellation_commission_amount",
            field=models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
        ),
        migrations.AddField(
            model_name="settlement",
            name="cancellation_owner_amount",
            field=models.DecimalField(
                decimal_places=2,
                default=Decimal("0.00"),
                help_text="Owner share of the retained cancellation charge, paid in the payout batch.",
                max_digits=12,
            ),
        ),
        migrations.AddField(
            model_name="settlement",
            name="payout_attempts",
            field=models.PositiveIntegerField(
                default=0,
                help_text="Failed transfer attempts; part of the transfer idempotency key.",
            ),
        ),
    ]

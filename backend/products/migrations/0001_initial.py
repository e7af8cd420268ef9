import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("title", models.CharField(max_length=140)),
                ("description", models.TextField(blank=True)),
                (
                    "daily_price",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                (
                    "total_stock_units",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Number of interchangeable physical units that can be rented per day.",
                    ),
                ),
                (
                    "all_days_available",
                    models.BooleanField(
                        default=True,
                        help_text="When disabled only the days listed in publishable_days can be booked.",
                    ),
                ),
                (
                    "publishable_days",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="ISO dates (YYYY-MM-DD) open for booking when all_days_available is off.",
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("is_deleted", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="products",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="CancellationTier",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("hours_before_start", models.PositiveIntegerField()),
                (
                    "charge_percentage",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(0),
                            django.core.validators.MaxValueValidator(100),
                        ],
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="cancellation_tiers",
                        to="products.product",
                    ),
                ),
            ],
            options={
                "ordering": ["-hours_before_start"],
            },
        ),
        migrations.AddConstraint(
            model_name="cancellationtier",
            constraint=models.UniqueConstraint(
                fields=("product", "hours_before_start"),
                name="uniq_cancellation_tier_threshold",
            ),
        ),
    ]

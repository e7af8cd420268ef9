from datetime import date
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError

from products.models import CancellationTier, Product

pytestmark = pytest.mark.django_db


def test_publishable_day_set_is_none_when_every_day_is_open(product):
    assert product.publishable_day_set() is None


def test_publishable_day_set_parses_iso_days(product):
    product.all_days_available = False
    product.publishable_days = ["2030-01-02", "2030-01-05"]

    assert product.publishable_day_set() == {date(2030, 1, 2), date(2030, 1, 5)}


def test_clean_rejects_bad_publishable_day(product):
    product.publishable_days = ["next friday"]

    with pytest.raises(ValidationError):
        product.clean()


def test_bookable_excludes_inactive_and_deleted(owner_user, product):
    Product.objects.create(owner=owner_user, title="Old Drone", is_deleted=True)
    Product.objects.create(owner=owner_user, title="Hidden Bike", is_active=False)

    assert list(Product.objects.bookable()) == [product]


def test_one_tier_per_threshold(product):
    CancellationTier.objects.create(product=product, hours_before_start=24, charge_percentage=Decimal("50"))

    with pytest.raises(IntegrityError):
        CancellationTier.objects.create(product=product, hours_before_start=24, charge_percentage=Decimal("20"))

"""Tests for per-day availability and stock reservation."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone as dt_timezone

import pytest
from django.utils import timezone

from bookings import availability, services
from bookings.models import Booking, ProductDayReservation
from core import errors

pytestmark = pytest.mark.django_db


def future(days: int) -> date:
    return timezone.now().date() + timedelta(days=days)


def test_normalize_day_accepts_dates_strings_and_objects():
    assert availability.normalize_day(date(2030, 5, 1)) == date(2030, 5, 1)
    assert availability.normalize_day("2030-05-01") == date(2030, 5, 1)
    assert availability.normalize_day({"date": "2030-05-01"}) == date(2030, 5, 1)
    assert availability.normalize_day(
        datetime(2030, 5, 1, 23, 30, tzinfo=dt_timezone(timedelta(hours=-5)))
    ) == date(2030, 5, 2)
    assert availability.normalize_day("2030-05-01T22:00:00-05:00") == date(2030, 5, 2)


@pytest.mark.parametrize("value", ["", "not-a-date", "2030-13-40", 12, None])
def test_normalize_day_rejects_garbage(value):
    with pytest.raises(errors.ValidationError):
        availability.normalize_day(value)


def test_normalize_days_deduplicates_and_sorts():
    days = availability.normalize_days(["2030-05-03", "2030-05-01", {"date": "2030-05-03"}])
    assert days == [date(2030, 5, 1), date(2030, 5, 3)]


def test_normalize_days_requires_a_list():
    with pytest.raises(errors.ValidationError):
        availability.normalize_days([])
    with pytest.raises(errors.ValidationError):
        availability.normalize_days("2030-05-01")


def test_zero_stock_is_out_of_stock(product):
    product.total_stock_units = 0
    product.save()

    result = availability.check_availability(product, [future(2)])

    assert result.available is False
    assert result.reason == availability.REASON_OUT_OF_STOCK
    assert result.as_dict()["message"] == "Product is out of stock."


def test_day_outside_publishable_set_is_rejected(product):
    product.all_days_available = False
    product.publishable_days = [future(2).isoformat()]
    product.save()

    ok = availability.check_availability(product, [future(2)])
    blocked = availability.check_availability(product, [future(2), future(3)])

    assert ok.available is True
    assert blocked.available is False
    assert blocked.reason == availability.REASON_DAY_NOT_PUBLISHABLE
    assert blocked.per_day[1].reason == availability.REASON_DAY_NOT_PUBLISHABLE
    assert blocked.per_day[0].reason == ""


def test_two_units_allow_two_bookings_then_block_the_third(product, booking_factory, other_user):
    product.total_stock_units = 2
    product.save()
    day = future(5)

    booking_factory(days=[day])
    booking_factory(days=[day], renter=other_user)
    result = availability.check_availability(product, [day])

    assert result.available is False
    assert result.reason == availability.REASON_INSUFFICIENT_STOCK
    entry = result.per_day[0]
    assert (entry.booked, entry.available, entry.total) == (2, 0, 2)


def test_only_non_terminal_bookings_hold_stock(product, booking_factory):
    booking = booking_factory(days=[future(6)])
    assert availability.check_availability(product, [future(6)]).available is False

    Booking.objects.filter(pk=booking.pk).update(status=Booking.Status.COMPLETED)

    assert availability.check_availability(product, [future(6)]).available is True


def test_partial_overlap_reports_each_day(product, booking_factory):
    booking_factory(days=[future(4)])

    result = availability.check_availability(product, [future(3), future(4), future(5)])

    assert result.available is False
    assert [entry.available for entry in result.per_day] == [1, 0, 1]
    payload = result.as_dict()
    assert payload["perDay"][1]["reason"] == availability.REASON_INSUFFICIENT_STOCK
    assert payload["perDay"][0]["day"] == future(3).isoformat()


def test_reserve_days_refuses_past_stock(product, booking_factory):
    booking_factory(days=[future(7)])

    with pytest.raises(errors.ConflictError) as excinfo:
        availability.reserve_days(product, [future(7)])

    assert excinfo.value.extra["reason"] == availability.REASON_INSUFFICIENT_STOCK
    row = ProductDayReservation.objects.get(product=product, day=future(7))
    assert row.reserved == 1


def test_cancelling_releases_reserved_units(product, booking_factory, renter_user, other_user):
    booking = booking_factory(days=[future(8), future(9)])

    services.cancel_booking(booking.id, renter_user)

    reserved = ProductDayReservation.objects.filter(product=product).values_list("reserved", flat=True)
    assert set(reserved) == {0}
    again = booking_factory(days=[future(8)], renter=other_user)
    assert again.status == Booking.Status.PENDING

"""Per-day availability of a product's stock units."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone as dt_timezone
from typing import Any, Iterable

from django.db.models import Count, F
from django.utils.dateparse import parse_date, parse_datetime

from core import errors
from products.models import Product

from .models import Booking, BookingDay, ProductDayReservation

logger = logging.getLogger(__name__)

REASON_OUT_OF_STOCK = "out_of_stock"
REASON_DAY_NOT_PUBLISHABLE = "day_not_publishable"
REASON_INSUFFICIENT_STOCK = "insufficient_stock"

REASON_MESSAGES = {
    REASON_OUT_OF_STOCK: "Product is out of stock.",
    REASON_DAY_NOT_PUBLISHABLE: "Selected dates are not available.",
    REASON_INSUFFICIENT_STOCK: "Not enough units available for the selected dates.",
}


@dataclass(frozen=True)
class DayAvailability:
    day: date
    booked: int
    available: int
    total: int
    reason: str = ""

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "day": self.day.isoformat(),
            "booked": self.booked,
            "available": self.available,
            "total": self.total,
        }
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    per_day: list[DayAvailability] = field(default_factory=list)
    reason: str = ""

    @property
    def message(self) -> str:
        return REASON_MESSAGES.get(self.reason, "")

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "available": self.available,
            "perDay": [entry.as_dict() for entry in self.per_day],
        }
        if self.reason:
            data["reason"] = self.reason
            data["message"] = self.message
        return data


def normalize_day(value: Any) -> date:
    """Reduce a date-like input to its UTC calendar day."""
    if isinstance(value, dict):
        value = value.get("date")
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(dt_timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        parsed_dt = None
        if "T" in text or " " in text:
            try:
                parsed_dt = parse_datetime(text)
            except ValueError:
                parsed_dt = None
        if parsed_dt is not None:
            return normalize_day(parsed_dt)
        try:
            parsed = parse_date(text)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise errors.ValidationError(f"Invalid day: {value!r}")


def normalize_days(values: Iterable[Any] | None) -> list[date]:
    """Return the distinct calendar days in ``values`` in ascending order."""
    if values is None or isinstance(values, (str, bytes)):
        raise errors.ValidationError("days must be a list of dates.")
    days = sorted({normalize_day(value) for value in values})
    if not days:
        raise errors.ValidationError("At least one day is required.")
    return days


def booked_counts(product: Product, days: Iterable[date]) -> dict[date, int]:
    """Count non-terminal bookings touching each day (one unit per booking per day)."""
    rows = (
        BookingDay.objects.filter(
            product=product,
            day__in=list(days),
            booking__status__in=Booking.NON_TERMINAL_STATUSES,
        )
        .values("day")
        .annotate(count=Count("booking", distinct=True))
    )
    return {row["day"]: row["count"] for row in rows}


def check_availability(product: Product, candidate_days: Iterable[Any]) -> AvailabilityResult:
    """Read-only availability snapshot for ``candidate_days``."""
    days = normalize_days(candidate_days)
    total = int(product.total_stock_units or 0)

    if total <= 0:
        per_day = [
            DayAvailability(day=day, booked=0, available=0, total=0, reason=REASON_OUT_OF_STOCK)
            for day in days
        ]
        return AvailabilityResult(available=False, per_day=per_day, reason=REASON_OUT_OF_STOCK)

    publishable = product.publishable_day_set()
    counts = booked_counts(product, days)

    per_day: list[DayAvailability] = []
    overall_reason = ""
    for day in days:
        booked = counts.get(day, 0)
        free = max(0, total - booked)
        reason = ""
        if publishable is not None and day not in publishable:
            reason = REASON_DAY_NOT_PUBLISHABLE
        elif free < 1:
            reason = REASON_INSUFFICIENT_STOCK
        if reason and not overall_reason:
            overall_reason = reason
        per_day.append(DayAvailability(day=day, booked=booked, available=free, total=total, reason=reason))

    return AvailabilityResult(
        available=not overall_reason,
        per_day=per_day,
        reason=overall_reason,
    )


def reserve_days(product: Product, days: Iterable[date]) -> None:
    """Take one unit per day for ``product``; must run inside ``transaction.atomic``.

    Each day is claimed with a conditional increment capped at the product's
    stock, so two concurrent callers can never both take the last unit. A
    ConflictError aborts the surrounding transaction, releasing any day
    already claimed by this call.
    """
    days = list(days)
    total = int(product.total_stock_units or 0)
    seeds = booked_counts(product, days)
    for day in days:
        row, _created = ProductDayReservation.objects.get_or_create(
            product=product,
            day=day,
            defaults={"reserved": seeds.get(day, 0)},
        )
        updated = ProductDayReservation.objects.filter(
            pk=row.pk,
            reserved__lt=total,
        ).update(reserved=F("reserved") + 1)
        if not updated:
            logger.info(
                "bookings: reservation rejected, no units left",
                extra={"product_id": product.id, "day": day.isoformat(), "stock": total},
            )
            raise errors.ConflictError(
                REASON_MESSAGES[REASON_INSUFFICIENT_STOCK],
                extra={"reason": REASON_INSUFFICIENT_STOCK, "day": day.isoformat()},
            )


def release_days(booking: Booking) -> None:
    """Give back the units held by ``booking`` once it reaches a terminal status."""
    days = list(booking.days.values_list("day", flat=True))
    if not days:
        return
    ProductDayReservation.objects.filter(
        product_id=booking.product_id,
        day__in=days,
        reserved__gt=0,
    ).update(reserved=F("reserved") - 1)

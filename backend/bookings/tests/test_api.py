"""HTTP-level tests for the bookings API."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from django.utils import timezone

from bookings.models import Booking

pytestmark = pytest.mark.django_db


def future(days: int) -> date:
    return timezone.now().date() + timedelta(days=days)


def test_availability_is_public(api_client, product):
    resp = api_client.post(
        "/api/bookings/availability/",
        {"product": product.id, "days": [future(2).isoformat()]},
        format="json",
    )

    assert resp.status_code == 200, resp.data
    assert resp.data["available"] is True
    assert resp.data["perDay"][0]["available"] == 1


def test_availability_unknown_product_is_404(api_client):
    resp = api_client.post(
        "/api/bookings/availability/",
        {"product": 424242, "days": [future(2).isoformat()]},
        format="json",
    )

    assert resp.status_code == 404
    assert resp.data["code"] == "not_found"


def test_availability_bad_day_is_400(api_client, product):
    resp = api_client.post(
        "/api/bookings/availability/",
        {"product": product.id, "days": ["tomorrow-ish"]},
        format="json",
    )

    assert resp.status_code == 400
    assert resp.data["code"] == "invalid"


def test_create_booking_requires_auth(api_client, product):
    resp = api_client.post(
        "/api/bookings/",
        {"product": product.id, "days": [future(2).isoformat()]},
        format="json",
    )

    assert resp.status_code == 401


def test_create_and_list_booking(api_client, product, renter_user, other_user):
    api_client.force_authenticate(renter_user)
    resp = api_client.post(
        "/api/bookings/",
        {"product": product.id, "days": [future(2).isoformat(), future(3).isoformat()]},
        format="json",
    )

    assert resp.status_code == 201, resp.data
    assert resp.data["status"] == Booking.Status.PENDING
    assert resp.data["total_amount"] == "200.00"
    assert resp.data["requested_days"] == [future(2).isoformat(), future(3).isoformat()]

    listing = api_client.get("/api/bookings/")
    assert listing.status_code == 200
    assert [item["id"] for item in listing.data] == [resp.data["id"]]

    api_client.force_authenticate(other_user)
    assert api_client.get("/api/bookings/").data == []
    assert api_client.get(f"/api/bookings/{resp.data['id']}/").status_code == 403


def test_double_booking_last_unit_returns_conflict(api_client, booking_factory, product, other_user):
    booking_factory(days=[future(4)])
    api_client.force_authenticate(other_user)

    resp = api_client.post(
        "/api/bookings/",
        {"product": product.id, "days": [future(4).isoformat()]},
        format="json",
    )

    assert resp.status_code == 409
    assert resp.data["code"] == "conflict"
    assert resp.data["reason"] == "insufficient_stock"


def test_status_endpoint_is_owner_only(api_client, booking_factory, owner_user, renter_user):
    booking = booking_factory()

    api_client.force_authenticate(renter_user)
    resp = api_client.post(f"/api/bookings/{booking.id}/status/", {"status": "confirmed"}, format="json")
    assert resp.status_code == 403

    api_client.force_authenticate(owner_user)
    resp = api_client.post(f"/api/bookings/{booking.id}/status/", {"status": "confirmed"}, format="json")
    assert resp.status_code == 200, resp.data
    assert resp.data["status"] == Booking.Status.CONFIRMED

    resp = api_client.post(f"/api/bookings/{booking.id}/status/", {"status": "pending"}, format="json")
    assert resp.status_code == 409
    assert resp.data["code"] == "invalid_state"


def test_cancel_endpoint_returns_refund_breakdown(api_client, booking_factory, renter_user):
    booking = booking_factory()
    api_client.force_authenticate(renter_user)

    resp = api_client.post(f"/api/bookings/{booking.id}/cancel/", {"reason": "sick"}, format="json")

    assert resp.status_code == 200, resp.data
    assert resp.data["status"] == Booking.Status.CANCELLED
    assert resp.data["refundAmount"] == "0.00"


def test_return_photo_round_trip_over_http(api_client, booking_factory, owner_user, renter_user):
    booking = booking_factory(status=Booking.Status.ONGOING)

    api_client.force_authenticate(renter_user)
    upload = api_client.post(
        f"/api/bookings/{booking.id}/return-photos/",
        {"url": "https://cdn.example.com/r/1.jpg", "key": "r/1.jpg"},
        format="json",
    )
    assert upload.status_code == 201, upload.data
    photo_id = upload.data["id"]

    api_client.force_authenticate(owner_user)
    rejected = api_client.post(
        f"/api/bookings/{booking.id}/return-photos/{photo_id}/review/",
        {"action": "reject"},
        format="json",
    )
    assert rejected.status_code == 400

    rejected = api_client.post(
        f"/api/bookings/{booking.id}/return-photos/{photo_id}/review/",
        {"action": "reject", "reason": "blurry"},
        format="json",
    )
    assert rejected.status_code == 200, rejected.data
    assert rejected.data["return_photos"][0]["status"] == "rejected"

    api_client.force_authenticate(renter_user)
    again = api_client.post(
        f"/api/bookings/{booking.id}/return-photos/{photo_id}/reupload/",
        {"url": "https://cdn.example.com/r/1b.jpg"},
        format="json",
    )
    assert again.status_code == 200, again.data
    assert again.data["status"] == "pending"

    api_client.force_authenticate(owner_user)
    approved = api_client.post(
        f"/api/bookings/{booking.id}/return-photos/{photo_id}/review/",
        {"action": "approve"},
        format="json",
    )
    assert approved.status_code == 200
    assert approved.data["all_return_photos_verified"] is True

"""Return-photo verification and its effect on payout eligibility."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from django.utils import timezone

from bookings import photos
from bookings.models import Booking, ReturnPhoto
from core import errors
from notifications.models import UserNotification
from payments import services as payment_services
from payments.models import Settlement

pytestmark = pytest.mark.django_db


def future(days: int) -> date:
    return timezone.now().date() + timedelta(days=days)


def _upload(booking, renter, count: int) -> list[ReturnPhoto]:
    return [
        photos.upload_return_photo(
            booking.id,
            renter,
            url=f"https://cdn.example.com/returns/{booking.id}/{index}.jpg",
            key=f"returns/{booking.id}/{index}.jpg",
        )
        for index in range(count)
    ]


def test_photos_verified_requires_at_least_one_approved():
    assert photos.photos_verified([]) is False
    assert photos.photos_verified([ReturnPhoto.Status.APPROVED]) is True
    assert photos.photos_verified([ReturnPhoto.Status.APPROVED, ReturnPhoto.Status.PENDING]) is False


def test_upload_requires_an_active_rental(booking_factory, renter_user):
    booking = booking_factory()

    with pytest.raises(errors.StateError):
        _upload(booking, renter_user, 1)


def test_only_the_renter_uploads(booking_factory, owner_user):
    booking = booking_factory(status=Booking.Status.ONGOING)

    with pytest.raises(errors.AuthorizationError):
        _upload(booking, owner_user, 1)


def test_rejection_needs_a_reason(booking_factory, renter_user, owner_user):
    booking = booking_factory(status=Booking.Status.ONGOING)
    [photo] = _upload(booking, renter_user, 1)

    with pytest.raises(errors.ValidationError):
        photos.review_return_photo(booking.id, photo.id, owner_user, action="reject", reason="  ")


def test_only_the_owner_reviews(booking_factory, renter_user):
    booking = booking_factory(status=Booking.Status.ONGOING)
    [photo] = _upload(booking, renter_user, 1)

    with pytest.raises(errors.AuthorizationError):
        photos.review_return_photo(booking.id, photo.id, renter_user, action="approve")


def test_reviewing_twice_is_rejected(booking_factory, renter_user, owner_user):
    booking = booking_factory(status=Booking.Status.ONGOING)
    [photo] = _upload(booking, renter_user, 1)
    photos.review_return_photo(booking.id, photo.id, owner_user, action="approve")

    with pytest.raises(errors.ConflictError):
        photos.review_return_photo(booking.id, photo.id, owner_user, action="approve")
    with pytest.raises(errors.StateError):
        photos.review_return_photo(booking.id, photo.id, owner_user, action="reject", reason="late")


def test_reupload_only_for_rejected_photos(booking_factory, renter_user):
    booking = booking_factory(status=Booking.Status.ONGOING)
    [photo] = _upload(booking, renter_user, 1)

    with pytest.raises(errors.StateError):
        photos.reupload_return_photo(
            booking.id, photo.id, renter_user, url="https://cdn.example.com/new.jpg"
        )


def test_new_upload_clears_verification(booking_factory, renter_user, owner_user):
    booking = booking_factory(status=Booking.Status.ONGOING)
    [photo] = _upload(booking, renter_user, 1)
    booking = photos.review_return_photo(booking.id, photo.id, owner_user, action="approve")
    assert booking.all_return_photos_verified is True

    _upload(booking, renter_user, 1)

    booking.refresh_from_db()
    assert booking.all_return_photos_verified is False


def test_reject_reupload_approve_unlocks_payout(
    paid_booking_factory, renter_user, owner_user, settings
):
    settings.PAYOUT_HOLD_DAYS = 15
    booking = paid_booking_factory()
    Booking.objects.filter(pk=booking.pk).update(status=Booking.Status.COMPLETED)
    first, second, third = _upload(booking, renter_user, 3)
    photos.review_return_photo(booking.id, first.id, owner_user, action="approve")
    photos.review_return_photo(booking.id, second.id, owner_user, action="approve")

    booking = photos.review_return_photo(
        booking.id, third.id, owner_user, action="reject", reason="blurry"
    )
    assert booking.all_return_photos_verified is False
    third.refresh_from_db()
    assert third.rejection_reason == "blurry"
    assert UserNotification.objects.filter(user=renter_user, title="Return Photo Rejected").exists()

    replaced = photos.reupload_return_photo(
        booking.id, third.id, renter_user, url="https://cdn.example.com/returns/sharp.jpg"
    )
    assert replaced.status == ReturnPhoto.Status.PENDING
    assert replaced.rejection_reason == ""

    before = timezone.now()
    booking = photos.review_return_photo(booking.id, third.id, owner_user, action="approve")

    assert booking.all_return_photos_verified is True
    settlement = Settlement.objects.get(booking=booking)
    assert settlement.payout_status == Settlement.PayoutStatus.SCHEDULED
    assert settlement.scheduled_payout_date >= before + timedelta(days=15)
    assert UserNotification.objects.filter(user=owner_user, title="Payout Scheduled").exists()


def test_verification_before_payment_schedules_on_confirm(
    booking_factory, renter_user, owner_user, stripe_mock
):
    booking = booking_factory(status=Booking.Status.CONFIRMED)
    [photo] = _upload(booking, renter_user, 1)
    photos.review_return_photo(booking.id, photo.id, owner_user, action="approve")

    settlement = payment_services.create_payment(booking.id, renter_user)
    settlement = payment_services.confirm_payment(settlement.payment_intent_id)

    assert settlement.payout_status == Settlement.PayoutStatus.SCHEDULED

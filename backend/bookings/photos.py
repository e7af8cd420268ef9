"""Return-photo upload and review; all-approved photos unlock the owner payout."""

from __future__ import annotations

import logging
from datetime import datetime

from django.db import transaction
from django.utils import timezone

from core import errors
from notifications.services import notify_user
from payments import services as payment_services

from . import domain
from .models import Booking, ReturnPhoto

logger = logging.getLogger(__name__)

APPROVE = "approve"
REJECT = "reject"
REVIEW_ACTIONS = (APPROVE, REJECT)
_REVIEW_RESULT = {APPROVE: ReturnPhoto.Status.APPROVED, REJECT: ReturnPhoto.Status.REJECTED}


def photos_verified(statuses) -> bool:
    """True iff there is at least one photo and every photo is approved."""
    statuses = list(statuses)
    return bool(statuses) and all(status == ReturnPhoto.Status.APPROVED for status in statuses)


def _lock_booking(booking_id: int) -> Booking:
    booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
    if booking is None:
        raise errors.NotFoundError("Booking not found.")
    return booking


def _refresh_verification(booking: Booking, *, now: datetime) -> bool:
    """Recompute the verified flag and sync the payout; returns True if a payout was scheduled."""
    verified = photos_verified(booking.return_photos.values_list("status", flat=True))
    if verified != booking.all_return_photos_verified:
        booking.all_return_photos_verified = verified
        booking.save(update_fields=["all_return_photos_verified", "updated_at"])
        logger.info(
            "bookings: return verification changed",
            extra={"booking_id": booking.id, "verified": verified},
        )
    return payment_services.sync_payout_eligibility(booking, now=now)


def _clean_url(url) -> str:
    url = (url or "").strip() if isinstance(url, str) else ""
    if not url:
        raise errors.ValidationError("A photo url is required.")
    return url


def upload_return_photo(booking_id: int, renter, *, url: str, key: str = "") -> ReturnPhoto:
    url = _clean_url(url)
    now = timezone.now()
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        domain.assert_renter(booking, renter, action="upload return photos")
        domain.assert_accepts_return_photos(booking)
        photo = ReturnPhoto.objects.create(
            booking=booking,
            url=url,
            key=key or "",
            status=ReturnPhoto.Status.PENDING,
            uploaded_at=now,
        )
        _refresh_verification(booking, now=now)

    notify_user(
        booking.owner_id,
        "Return Photo Uploaded",
        f"The renter uploaded a return photo for booking #{booking.id}.",
        kind="return_photo",
        booking_id=booking.id,
    )
    return photo


def review_return_photo(
    booking_id: int,
    photo_id: int,
    owner,
    *,
    action: str,
    reason: str | None = None,
) -> Booking:
    """Approve or reject one pending photo on behalf of the owner."""
    if action not in REVIEW_ACTIONS:
        raise errors.ValidationError("action must be 'approve' or 'reject'.")
    reason = (reason or "").strip()
    if action == REJECT and not reason:
        raise errors.ValidationError("A rejection reason is required.")

    now = timezone.now()
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        domain.assert_owner(booking, owner, action="review return photos")
        domain.assert_accepts_return_photos(booking)
        photo = booking.return_photos.filter(pk=photo_id).first()
        if photo is None:
            raise errors.NotFoundError("Return photo not found.")
        if photo.status == _REVIEW_RESULT[action]:
            raise errors.ConflictError(f"Photo is already {photo.status}.")
        if photo.status != ReturnPhoto.Status.PENDING:
            raise errors.StateError(f"Only pending photos can be reviewed (photo is {photo.status}).")

        photo.status = _REVIEW_RESULT[action]
        photo.rejection_reason = reason if action == REJECT else ""
        photo.reviewed_at = now
        photo.save(update_fields=["status", "rejection_reason", "reviewed_at"])
        scheduled = _refresh_verification(booking, now=now)

    if action == REJECT:
        notify_user(
            booking.renter_id,
            "Return Photo Rejected",
            f"A return photo for booking #{booking.id} was rejected: {reason}",
            kind="return_photo",
            booking_id=booking.id,
        )
    if scheduled:
        payment_services.notify_payout_scheduled(booking)
    return booking


def reupload_return_photo(
    booking_id: int,
    photo_id: int,
    renter,
    *,
    url: str,
    key: str = "",
) -> ReturnPhoto:
    """Replace a rejected photo; the entry goes back to pending review."""
    url = _clean_url(url)
    now = timezone.now()
    with transaction.atomic():
        booking = _lock_booking(booking_id)
        domain.assert_renter(booking, renter, action="re-upload return photos")
        domain.assert_accepts_return_photos(booking)
        photo = booking.return_photos.filter(pk=photo_id).first()
        if photo is None:
            raise errors.NotFoundError("Return photo not found.")
        if photo.status != ReturnPhoto.Status.REJECTED:
            raise errors.StateError("Only rejected photos can be re-uploaded.")

        photo.url = url
        photo.key = key or ""
        photo.status = ReturnPhoto.Status.PENDING
        photo.rejection_reason = ""
        photo.uploaded_at = now
        photo.reviewed_at = None
        photo.save(update_fields=["url", "key", "status", "rejection_reason", "uploaded_at", "reviewed_at"])
        _refresh_verification(booking, now=now)

    notify_user(
        booking.owner_id,
        "Return Photo Re-uploaded",
        f"The renter re-uploaded a return photo for booking #{booking.id}.",
        kind="return_photo",
        booking_id=booking.id,
    )
    return photo

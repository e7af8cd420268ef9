"""Domain helpers for booking roles and state transitions."""

from __future__ import annotations

from typing import Literal

from core import errors

from .models import Booking

Role = Literal["owner", "renter"]

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    Booking.Status.PENDING: frozenset({Booking.Status.CONFIRMED, Booking.Status.CANCELLED}),
    Booking.Status.CONFIRMED: frozenset({Booking.Status.ONGOING, Booking.Status.CANCELLED}),
    Booking.Status.ONGOING: frozenset({Booking.Status.COMPLETED, Booking.Status.CANCELLED}),
    Booking.Status.COMPLETED: frozenset(),
    Booking.Status.CANCELLED: frozenset(),
}

# Return photos can be handed in once the rental is under way.
RETURN_PHOTO_STATUSES = (
    Booking.Status.CONFIRMED,
    Booking.Status.ONGOING,
    Booking.Status.COMPLETED,
)


def role_of(booking: Booking, user) -> Role | None:
    """Return the user's role on the booking, or None for outsiders."""
    user_id = getattr(user, "id", user)
    if user_id == booking.owner_id:
        return "owner"
    if user_id == booking.renter_id:
        return "renter"
    return None


def assert_participant(booking: Booking, user) -> Role:
    role = role_of(booking, user)
    if role is None:
        raise errors.AuthorizationError("Only the owner or renter can act on this booking.")
    return role


def assert_owner(booking: Booking, user, *, action: str = "perform this action") -> None:
    if role_of(booking, user) != "owner":
        raise errors.AuthorizationError(f"Only the product owner can {action}.")


def assert_renter(booking: Booking, user, *, action: str = "perform this action") -> None:
    if role_of(booking, user) != "renter":
        raise errors.AuthorizationError(f"Only the renter can {action}.")


def parse_status(value) -> str:
    """Validate a requested booking status."""
    if not isinstance(value, str) or value not in Booking.Status.values:
        raise errors.ValidationError(
            f"status must be one of: {', '.join(Booking.Status.values)}."
        )
    return value


def assert_transition_allowed(current: str, target: str) -> None:
    """Raise StateError unless ``current -> target`` is a lifecycle edge."""
    successors = ALLOWED_TRANSITIONS.get(current, frozenset())
    if not successors:
        raise errors.StateError(f"Booking is already {current}.")
    if target not in successors:
        raise errors.StateError(f"Cannot move a {current} booking to {target}.")


def assert_can_cancel(booking: Booking) -> None:
    assert_transition_allowed(booking.status, Booking.Status.CANCELLED)


def assert_accepts_return_photos(booking: Booking) -> None:
    if booking.status not in RETURN_PHOTO_STATUSES:
        raise errors.StateError(
            "Return photos can only be handled for confirmed, ongoing or completed bookings."
        )

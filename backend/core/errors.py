"""Error taxonomy shared by the availability, booking and settlement flows."""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base class for errors that are safe to surface to API callers."""

    status_code = 400
    code = "error"
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None, *, extra: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(self.message)

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class ValidationError(EngineError):
    """Missing or malformed input."""

    status_code = 400
    code = "invalid"
    default_message = "Invalid input."


class AuthorizationError(EngineError):
    """Actor is not permitted to perform this action on the resource."""

    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to perform this action."


class NotFoundError(EngineError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class ConflictError(EngineError):
    """Insufficient stock, duplicate work or a lost compare-and-set race."""

    status_code = 409
    code = "conflict"
    default_message = "The request conflicts with the current state."


class StateError(EngineError):
    """Disallowed lifecycle transition."""

    status_code = 409
    code = "invalid_state"
    default_message = "Action not allowed in the current state."


class ExternalGatewayError(EngineError):
    """Payment gateway call failed or returned a non-success outcome."""

    status_code = 502
    code = "gateway_error"
    default_message = "Payment provider request failed."
    retryable = False

    def as_payload(self) -> dict[str, Any]:
        payload = super().as_payload()
        payload["retryable"] = self.retryable
        return payload

# core/errors.py
"""
Pulseboard Errors — v1.0.0

Error taxonomy shared by the stores, the HTTP layer and the dashboard session.

Every error carries:
- code: short machine-readable identifier (used in the JSON error envelope)
- status: HTTP status the API layer maps it to
"""

from __future__ import annotations


class PulseError(Exception):
    """Base exception for Pulseboard errors."""

    code = "server_error"
    status = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.message}


class Unauthorized(PulseError):
    """Missing or mismatched bearer credential on a protected operation."""

    code = "unauthorized"
    status = 401


class NotFound(PulseError):
    """Delete/complete referencing an unknown id."""

    code = "not_found"
    status = 404


class Conflict(PulseError):
    """
    Operation rejected before any write because it would break
    referential integrity (e.g. deleting a tag that is still in use).
    """

    code = "conflict"
    status = 409


class ValidationError(PulseError):
    """Malformed record or request payload."""

    code = "invalid_request"
    status = 400


class NotConfigured(PulseError):
    """Server is missing a required secret (e.g. EDIT_PASSWORD)."""

    code = "not_configured"
    status = 500


class TransientIOFailure(PulseError):
    """
    Storage or upstream-metering read/write failure.

    Callers recover by keeping their last-known-good data and retrying
    on the next natural poll.
    """

    code = "io_failure"
    status = 503


__all__ = [
    "PulseError",
    "Unauthorized",
    "NotFound",
    "Conflict",
    "ValidationError",
    "NotConfigured",
    "TransientIOFailure",
]

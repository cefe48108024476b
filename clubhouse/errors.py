"""
clubhouse.errors — Error Taxonomy
==================================

Every business-rule failure is raised as a :class:`ClubhouseError`
subclass carrying a machine-readable ``kind`` and the HTTP status the API
layer maps it to.  Storage-layer exceptions never cross the service
boundary; they surface as :class:`InternalError`.
"""

from __future__ import annotations

__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "CapacityError",
    "ClubhouseError",
    "ConflictError",
    "DeadlineError",
    "InternalError",
    "NotFoundError",
    "StateError",
    "ValidationError",
]


class ClubhouseError(Exception):
    """Base class for all errors surfaced to callers."""

    kind: str = "error"
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "kind": self.kind, "message": self.message}


class ValidationError(ClubhouseError):
    kind = "validation"
    status_code = 400


class AuthenticationError(ClubhouseError):
    kind = "authentication"
    status_code = 401


class AuthorizationError(ClubhouseError):
    kind = "authorization"
    status_code = 403


class NotFoundError(ClubhouseError):
    kind = "not_found"
    status_code = 404


class ConflictError(ClubhouseError):
    """Duplicate registration or duplicate feedback."""

    kind = "conflict"
    status_code = 400


class CapacityError(ClubhouseError):
    kind = "capacity"
    status_code = 400


class DeadlineError(ClubhouseError):
    kind = "deadline"
    status_code = 400


class StateError(ClubhouseError):
    """Operation not allowed in the entity's current status."""

    kind = "state"
    status_code = 400


class InternalError(ClubhouseError):
    kind = "internal"
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)

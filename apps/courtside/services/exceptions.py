"""
Service-layer exceptions shared by the matchmaking, invite and listing services.

Route handlers translate these into HTTP status codes; services never raise
HTTPException themselves.
"""

from typing import Optional


class NotFoundError(ValueError):
    """Raised when an id or invite code does not match any record."""


class InvalidStateError(ValueError):
    """Raised when an operation is not valid for the entity's current status."""

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class ExpiredError(InvalidStateError):
    """Raised when an entity lapsed past its expiry time."""

    def __init__(self, message: str = "Invite has expired"):
        super().__init__(message, status="expired")


class ForbiddenError(PermissionError):
    """Raised when the caller's identity does not match the addressed party."""


class ConflictError(ValueError):
    """Raised when a duplicate pending invite or active listing/request exists."""


class TransientStorageError(RuntimeError):
    """Raised when the store fails inside an atomic operation (already rolled back)."""

"""Exception types raised by the client layers."""
from __future__ import annotations

from typing import Optional


class ReplyError(Exception):
    """Base class for every error raised by the replied client."""


class ApiError(ReplyError):
    """The backend answered with a non-success status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        super().__init__(message or f"HTTP {status_code}")

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class ConnectionFailure(ReplyError):
    """No response was received from the backend."""


class NotAuthenticated(ReplyError):
    """A call that needs a session was attempted without one."""


class ValidationError(ReplyError):
    """Input rejected locally before any network call."""


class AuthError(ReplyError):
    """Authentication related errors"""


class StorageError(ReplyError):
    """Avatar upload to object storage failed."""


__all__ = [
    "ReplyError",
    "ApiError",
    "ConnectionFailure",
    "NotAuthenticated",
    "ValidationError",
    "AuthError",
    "StorageError",
]

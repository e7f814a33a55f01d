"""Error taxonomy for autoflow."""

from __future__ import annotations

from typing import Any, Optional


class AutoflowError(Exception):
    """Base class for errors raised to callers of autoflow services."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(AutoflowError):
    """A workflow, run or step does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource") -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource


class AuthorizationError(AutoflowError):
    """The caller does not own the resource."""

    code = "AUTHORIZATION_ERROR"

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


class ValidationError(AutoflowError):
    """Invalid input or an illegal state transition."""

    code = "VALIDATION_ERROR"


class UnrecoverableError(AutoflowError):
    """A job failure that the queue must not retry."""

    code = "UNRECOVERABLE_ERROR"


__all__ = [
    "AutoflowError",
    "NotFoundError",
    "AuthorizationError",
    "ValidationError",
    "UnrecoverableError",
]

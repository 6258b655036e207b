"""Application-level exception types.

This module defines the errors raised across limiters, signals and streams,
enabling consistent error handling and logging.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and callers.

    Fields are optional to keep shapes consistent without forcing every
    raise site to fill all of them.
    """

    code: str
    message: str
    hint: str
    limit: float
    wait_seconds: float
    remaining_seconds: float
    operation_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for library failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when configuration text (e.g. a rate expression) is malformed."""


class CancellationError(AppError):
    """Raised when a cancellation signal fires before a blocking call completes.

    The code is ``cancelled`` for an explicit fire and ``deadline_exceeded``
    when the signal's deadline passed (or would pass before completion).
    """

    @classmethod
    def from_reason(
        cls,
        reason: str | None,
        *,
        message: str | None = None,
        details: ErrorDetails | None = None,
    ) -> CancellationError:
        code = reason or "cancelled"
        if message is None:
            message = "Deadline exceeded" if code == "deadline_exceeded" else "Operation cancelled"
        return cls(code=code, message=message, details=details)

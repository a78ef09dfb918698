"""Structured exception hierarchy for the catalog mirror.

Provides specific exception types for common failure modes,
with rich context for debugging and troubleshooting.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "MirrorError",
    "ConfigurationError",
    "CatalogRequestError",
    "StrategyNotFoundError",
    "StrategyAlreadyRunningError",
    "InvalidMonthError",
    "SyncAbortedError",
]


class MirrorError(Exception):
    """Base exception for all catalog mirror errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        strategy: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.strategy = strategy
        self.details = details or {}
        self.suggestion = suggestion

        parts = [f"[{strategy}] {message}" if strategy else message]

        if details:
            parts.append("\nDetails:")
            parts.extend(f"  {k}: {v}" for k, v in details.items())

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "strategy": self.strategy,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(MirrorError):
    """Invalid or incomplete configuration."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class CatalogRequestError(MirrorError):
    """A request to the upstream catalog failed.

    Raised for transport errors, timeouts and non-success status codes
    once the client's own retries are exhausted.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.path = path
        self.status_code = status_code
        self.cause = cause

        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        if status_code is not None:
            details["status_code"] = status_code
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class StrategyNotFoundError(MirrorError):
    """No strategy is registered under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Strategy {name} not found")


class StrategyAlreadyRunningError(MirrorError):
    """A second run of the same strategy was requested while one is in flight."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Strategy {name} is already running")


class InvalidMonthError(MirrorError, ValueError):
    """Rotation month outside 0..12."""

    def __init__(self, month: Any) -> None:
        self.month = month
        super().__init__(
            f"Month must be between 0 and 12, got {month!r}",
            suggestion="Use 0 for subjects without a date, 1-12 for calendar months.",
        )


class SyncAbortedError(MirrorError):
    """A long-running job gave up after sustained upstream failures.

    The checkpoint is left in place so the next invocation resumes.
    """

    def __init__(
        self,
        message: str,
        *,
        offset: int,
        total: int,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.offset = offset
        self.total = total
        self.cause = cause

        details = kwargs.pop("details", {})
        details.update({"offset": offset, "total": total})
        if cause:
            details["last_error"] = str(cause)

        super().__init__(message, details=details, **kwargs)

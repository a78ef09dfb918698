"""Resilience utilities for long-running sync jobs.

Provides a consecutive-failure circuit breaker used by the full catalog
backfill. A failed operation is retried at the same position after a
fixed backoff; once the failure threshold is reached the breaker opens
and the job is expected to abort and escalate to an operator.

Implementation: Uses tenacity library internally for the retry loop.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, Literal, Optional, Type, TypeVar

import tenacity

logger = logging.getLogger(__name__)

__all__ = ["CircuitBreaker", "CircuitBreakerOpen", "CircuitState"]

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"


class CircuitBreakerOpen(Exception):
    """Raised when the failure threshold has been reached."""

    def __init__(self, message: str, *, failures: int, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.failures = failures
        self.last_error = last_error


class CircuitBreaker:
    """Consecutive-failure guard for a single job.

    Every failure increments ``consecutive_failures``; every success
    resets it to zero. When the count reaches ``failure_threshold`` the
    breaker opens. It never closes on its own: the job aborts and a later
    run (with a fresh breaker, or after ``reset()``) picks up again.

    Example:
        breaker = CircuitBreaker(failure_threshold=3, backoff_seconds=30)

        try:
            page = breaker.call(lambda: catalog.list_subjects({}, 50, offset))
        except CircuitBreakerOpen as exc:
            notify_operator(offset, exc.last_error)
            raise
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        backoff_seconds: float = 30.0,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.backoff_seconds = backoff_seconds
        self.consecutive_failures = 0
        self.last_error: Optional[BaseException] = None
        self.state = CircuitState.CLOSED
        self._sleep = sleep

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def record_success(self) -> None:
        """Reset the failure count after a successful operation."""
        if self.consecutive_failures:
            logger.info(
                "Operation recovered after %d consecutive failures",
                self.consecutive_failures,
            )
        self.consecutive_failures = 0
        self.last_error = None

    def record_failure(self, exc: BaseException) -> None:
        """Count a failed operation, opening the circuit at the threshold."""
        self.consecutive_failures += 1
        self.last_error = exc

        if self.consecutive_failures >= self.failure_threshold:
            if not self.is_open:
                logger.error(
                    "Circuit breaker opening after %d consecutive failures: %s",
                    self.consecutive_failures,
                    exc,
                )
            self.state = CircuitState.OPEN
        else:
            logger.warning(
                "Failure %d/%d: %s",
                self.consecutive_failures,
                self.failure_threshold,
                exc,
            )

    def reset(self) -> None:
        """Close the circuit and forget previous failures."""
        self.consecutive_failures = 0
        self.last_error = None
        self.state = CircuitState.CLOSED

    def __enter__(self) -> "CircuitBreaker":
        if self.is_open:
            raise CircuitBreakerOpen(
                "Circuit breaker is OPEN - refusing further attempts",
                failures=self.consecutive_failures,
                last_error=self.last_error,
            )
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Any,
    ) -> Literal[False]:
        if exc_val is not None and isinstance(exc_val, Exception):
            self.record_failure(exc_val)
        elif exc_type is None:
            self.record_success()
        return False  # Don't suppress the exception

    def call(
        self,
        operation: Callable[[], T],
        *,
        on_failure: Optional[Callable[[BaseException, int], None]] = None,
        operation_name: str = "operation",
    ) -> T:
        """Run ``operation``, retrying it after a fixed backoff until it
        succeeds or the breaker opens.

        Args:
            operation: Zero-argument callable to execute
            on_failure: Called with (exception, consecutive_failures) after
                every failed attempt, before any backoff
            operation_name: Name for logging

        Raises:
            CircuitBreakerOpen: Once ``failure_threshold`` consecutive
                failures have been recorded. Chained to the last error.
        """

        def attempt() -> T:
            with self:
                try:
                    return operation()
                except Exception as exc:
                    if on_failure is not None:
                        on_failure(exc, self.consecutive_failures + 1)
                    raise

        def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
            """Log retry attempts."""
            exception = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "%s attempt %d failed: %s. Retrying in %.1fs...",
                operation_name,
                retry_state.attempt_number,
                exception,
                retry_state.next_action.sleep if retry_state.next_action else 0,
            )

        retryer = tenacity.Retrying(
            stop=lambda retry_state: self.is_open,
            wait=tenacity.wait_fixed(self.backoff_seconds),
            retry=tenacity.retry_if_exception_type(Exception),
            before_sleep=before_sleep_handler,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            return retryer(attempt)
        except CircuitBreakerOpen:
            raise
        except Exception as exc:
            if not self.is_open:
                raise
            raise CircuitBreakerOpen(
                f"{operation_name} failed {self.consecutive_failures} times in a row",
                failures=self.consecutive_failures,
                last_error=exc,
            ) from exc

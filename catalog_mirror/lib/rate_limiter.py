"""Rate limiting utilities for catalog endpoints.

Provides a fixed-interval, first-in-first-out rate limiter for controlling
request rates to the upstream catalog. Each endpoint class (bulk listing,
per-character detail) gets its own instance because upstream enforces a
separate budget per endpoint.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Optional

logger = logging.getLogger(__name__)

__all__ = ["RateLimiter"]


class _Waiter:
    """A caller parked in the limiter queue."""

    __slots__ = ("event", "admitted")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.admitted = False


class RateLimiter:
    """Fixed-interval FIFO rate limiter.

    Converts a queries-per-second budget into a minimum interval between
    releases. Callers queue in arrival order and a single drain thread
    releases at most one of them per interval, no matter how many callers
    ask for admission at once. Thread-safe for concurrent usage.

    Example:
        limiter = RateLimiter(qps=10)

        for subject_id in subject_ids:
            limiter.limit()  # Blocks until this caller's turn
            client.get_subject(subject_id)
    """

    def __init__(
        self,
        qps: float,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize rate limiter.

        Args:
            qps: Maximum sustained requests per second
            name: Label used in log messages
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep function (injectable for tests)
        """
        self.name = name
        self.interval = self._to_interval(qps)
        self._clock = clock
        self._sleep = sleep
        self._queue: Deque[_Waiter] = deque()
        self._lock = threading.Lock()
        self._processing = False
        self._last_release: Optional[float] = None

    @property
    def qps(self) -> float:
        return 1.0 / self.interval

    @staticmethod
    def _to_interval(qps: float) -> float:
        if qps <= 0:
            raise ValueError(f"qps must be positive, got {qps}")
        return 1.0 / qps

    def limit(self) -> bool:
        """Block until the caller may issue its request.

        Returns:
            True once admitted, False if the waiter was discarded by clear()
        """
        waiter = _Waiter()
        with self._lock:
            self._queue.append(waiter)
            start_drain = not self._processing
            if start_drain:
                self._processing = True

        if start_drain:
            thread = threading.Thread(
                target=self._drain,
                name=f"rate-limiter-{self.name}",
                daemon=True,
            )
            thread.start()

        waiter.event.wait()
        return waiter.admitted

    def _drain(self) -> None:
        """Release queued waiters one interval apart.

        Only one drain thread runs at a time; it exits once the queue is
        empty, and the next limit() call starts a new one.
        """
        while True:
            with self._lock:
                if not self._queue:
                    self._processing = False
                    return
                last_release = self._last_release
                interval = self.interval

            if last_release is not None:
                wait_time = interval - (self._clock() - last_release)
                if wait_time > 0:
                    self._sleep(wait_time)

            with self._lock:
                if not self._queue:
                    # Queue was cleared while sleeping
                    continue
                waiter = self._queue.popleft()
                self._last_release = self._clock()

            waiter.admitted = True
            waiter.event.set()

    def update_qps(self, qps: float) -> None:
        """Change the budget for subsequent releases.

        Already-queued callers keep their order.
        """
        interval = self._to_interval(qps)
        with self._lock:
            self.interval = interval
        logger.info("Rate limiter %s updated to %.2f QPS", self.name, qps)

    def clear(self) -> int:
        """Discard every pending caller.

        Discarded callers are woken and their limit() call returns False.

        Returns:
            Number of discarded callers
        """
        with self._lock:
            discarded = list(self._queue)
            self._queue.clear()

        for waiter in discarded:
            waiter.event.set()

        if discarded:
            logger.warning(
                "Rate limiter %s discarded %d pending callers",
                self.name,
                len(discarded),
            )
        return len(discarded)

    def queue_length(self) -> int:
        """Number of callers currently waiting for admission."""
        with self._lock:
            return len(self._queue)

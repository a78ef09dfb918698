"""Building blocks shared by the sync strategies.

Rate limiting, staleness rules, durable state, resilience helpers and the
external collaborators (catalog client, document store, notifier).
"""

from catalog_mirror.lib.cooldown import CooldownPolicy, needs_refresh
from catalog_mirror.lib.rate_limiter import RateLimiter
from catalog_mirror.lib.resilience import CircuitBreaker, CircuitBreakerOpen
from catalog_mirror.lib.state import Checkpoint, FileStateStore, MemoryStateStore, StateStore

__all__ = [
    "CooldownPolicy",
    "needs_refresh",
    "RateLimiter",
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "Checkpoint",
    "StateStore",
    "MemoryStateStore",
    "FileStateStore",
]

"""Durable key/value state: checkpoints and cursors.

Long-running jobs persist their progress here so an interrupted run can
resume where it left off. Values may carry a time-to-live so an abandoned
job's checkpoint expires instead of steering a future fresh run.

The file-backed store keeps one JSON file per key in a state directory.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

__all__ = [
    "StateStore",
    "MemoryStateStore",
    "FileStateStore",
    "Checkpoint",
    "DEFAULT_CHECKPOINT_TTL",
]

# Default state directory - can be overridden via environment variable
DEFAULT_STATE_DIR = ".state"

DEFAULT_CHECKPOINT_TTL = 14 * 24 * 60 * 60

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class StateStore(ABC):
    """Minimal durable key/value interface."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent or expired."""
        ...

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        """Store ``value``, optionally expiring after ``ttl_seconds``."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if something was deleted."""
        ...


class MemoryStateStore(StateStore):
    """In-process state store. Used in tests and single-shot runs."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._data[key] = (str(value), expires_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None


class FileStateStore(StateStore):
    """State store keeping one JSON file per key.

    Example:
        store = FileStateStore("./.state")
        store.set("bangumi:full_sync:offset", "1200", ttl_seconds=86400)
        store.get("bangumi:full_sync:offset")  # "1200"
    """

    def __init__(
        self,
        state_dir: Optional[Union[str, Path]] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if state_dir is None:
            state_dir = os.environ.get("MIRROR_STATE_DIR", DEFAULT_STATE_DIR)
        self.state_dir = Path(state_dir)
        self._clock = clock
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key)
        return self.state_dir / f"{safe}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)

        if not path.exists():
            logger.debug("No state found for %s", key)
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Invalid state file for %s: %s", key, e)
            return None

        if not isinstance(data, dict):
            logger.warning("Discarding state file for %s: expected an object, got %r", key, data)
            self.delete(key)
            return None

        expires_at = data.get("expires_at")
        if expires_at is not None:
            try:
                expires_at = float(expires_at)
            except (TypeError, ValueError):
                logger.warning(
                    "Discarding state file for %s: invalid expires_at %r", key, expires_at
                )
                self.delete(key)
                return None

        if expires_at is not None and self._clock() >= expires_at:
            logger.info("State for %s expired, discarding", key)
            self.delete(key)
            return None

        value = data.get("value")
        return None if value is None else str(value)

    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        path = self._path(key)
        data: Dict[str, Any] = {
            "key": key,
            "value": str(value),
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "expires_at": self._clock() + ttl_seconds if ttl_seconds else None,
        }

        with self._lock:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        logger.debug("Saved state %s = %s", key, value)

    def delete(self, key: str) -> bool:
        path = self._path(key)

        with self._lock:
            if path.exists():
                path.unlink()
                logger.debug("Deleted state %s", key)
                return True

        return False


class Checkpoint:
    """Pagination offset of a resumable job.

    Example:
        checkpoint = Checkpoint(store, "bangumi:full_sync:offset")
        offset = checkpoint.load()      # 0 on a fresh start
        ...
        checkpoint.save(offset + 50)    # after each page
        ...
        checkpoint.clear()              # once the job reaches its end
    """

    def __init__(
        self,
        store: StateStore,
        key: str,
        ttl_seconds: Optional[float] = DEFAULT_CHECKPOINT_TTL,
    ) -> None:
        self.store = store
        self.key = key
        self.ttl_seconds = ttl_seconds

    def load(self) -> int:
        """Saved offset, or 0 if absent or unparsable."""
        raw = self.store.get(self.key)
        if raw is None:
            return 0
        try:
            offset = int(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring unparsable checkpoint %s=%r", self.key, raw)
            return 0
        if offset < 0:
            logger.warning("Ignoring negative checkpoint %s=%d", self.key, offset)
            return 0
        return offset

    def save(self, offset: int) -> None:
        if offset < 0:
            raise ValueError(f"Checkpoint offset must be >= 0, got {offset}")
        self.store.set(self.key, str(offset), ttl_seconds=self.ttl_seconds)
        logger.debug("Checkpoint %s saved at offset %d", self.key, offset)

    def clear(self) -> None:
        if self.store.delete(self.key):
            logger.info("Checkpoint %s cleared", self.key)

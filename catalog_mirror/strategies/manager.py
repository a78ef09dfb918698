"""Registry and launcher for sync strategies.

The manager is the single entry point operators use to run strategies by
name. It refuses to start a strategy that is already in flight, so two
scheduled triggers firing together cannot run the same job twice.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Set

from catalog_mirror.lib.errors import StrategyAlreadyRunningError, StrategyNotFoundError
from catalog_mirror.models import SyncOptions, SyncProgress, SyncResult
from catalog_mirror.strategies.base import SyncStrategy

logger = logging.getLogger(__name__)

__all__ = ["StrategyManager"]


class StrategyManager:
    """Name -> strategy registry with per-name mutual exclusion.

    Example:
        manager = StrategyManager()
        manager.register_strategy(DailyIncremental(catalog, store))
        result = manager.execute_strategy("DailyIncremental")
    """

    def __init__(self) -> None:
        self._strategies: Dict[str, SyncStrategy] = {}
        self._running: Set[str] = set()
        self._lock = threading.Lock()

    def register_strategy(self, strategy: SyncStrategy) -> None:
        """Register ``strategy`` under its name. A later registration wins."""
        with self._lock:
            if strategy.name in self._strategies:
                logger.warning("Replacing registered strategy %s", strategy.name)
            self._strategies[strategy.name] = strategy
        logger.debug("Registered strategy %s", strategy.name)

    def get_strategy(self, name: str) -> Optional[SyncStrategy]:
        return self._strategies.get(name)

    def get_all_strategies(self) -> List[SyncStrategy]:
        return list(self._strategies.values())

    def execute_strategy(self, name: str, options: Optional[SyncOptions] = None) -> SyncResult:
        """Run a registered strategy by name.

        Raises:
            StrategyNotFoundError: If no strategy is registered as ``name``
            StrategyAlreadyRunningError: If ``name`` is already running
        """
        strategy = self._strategies.get(name)
        if strategy is None:
            raise StrategyNotFoundError(name)

        with self._lock:
            if name in self._running or strategy.is_running():
                raise StrategyAlreadyRunningError(name)
            self._running.add(name)

        logger.info("Executing strategy %s", name)
        try:
            return strategy.execute(options)
        finally:
            with self._lock:
                self._running.discard(name)

    def stop_strategy(self, name: str) -> bool:
        """Request a stop. Returns False if no such strategy is registered."""
        strategy = self._strategies.get(name)
        if strategy is None:
            return False
        strategy.stop()
        return True

    def stop_all_strategies(self) -> None:
        for name in self.get_running_strategies():
            logger.info("Stopping strategy %s", name)
            self._strategies[name].stop()

    def get_strategy_progress(self, name: str) -> Optional[SyncProgress]:
        strategy = self._strategies.get(name)
        return strategy.get_progress() if strategy else None

    def get_running_strategies(self) -> List[str]:
        with self._lock:
            in_flight = set(self._running)
        return [
            name
            for name, strategy in self._strategies.items()
            if name in in_flight or strategy.is_running()
        ]

    def is_strategy_running(self, name: str) -> bool:
        return name in self.get_running_strategies()

    def get_strategy_info(self, name: str) -> Optional[Dict[str, Any]]:
        strategy = self._strategies.get(name)
        if strategy is None:
            return None
        return {
            "name": strategy.name,
            "description": strategy.description,
            "is_running": self.is_strategy_running(name),
            "progress": strategy.get_progress().to_dict(),
        }

    def get_all_strategy_info(self) -> List[Dict[str, Any]]:
        return [info for info in (self.get_strategy_info(n) for n in list(self._strategies)) if info]

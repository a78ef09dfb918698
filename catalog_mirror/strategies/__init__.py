"""Sync strategies and the manager that runs them by name."""

from catalog_mirror.strategies.base import SyncStrategy
from catalog_mirror.strategies.biweekly import BiweeklyUpdate
from catalog_mirror.strategies.full_sync import FullSync
from catalog_mirror.strategies.incremental import DailyIncremental
from catalog_mirror.strategies.manager import StrategyManager
from catalog_mirror.strategies.monthly_rotation import (
    MonthlyRotation,
    RotationCursor,
    get_rotation_status,
    reset_rotation_month,
)
from catalog_mirror.strategies.yearly import YearlyUpdate

__all__ = [
    "SyncStrategy",
    "DailyIncremental",
    "YearlyUpdate",
    "BiweeklyUpdate",
    "MonthlyRotation",
    "FullSync",
    "RotationCursor",
    "StrategyManager",
    "get_rotation_status",
    "reset_rotation_month",
]

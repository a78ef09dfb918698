"""Biweekly sync of subjects released in the previous two years."""

from __future__ import annotations

from typing import Any, FrozenSet

from catalog_mirror.strategies.yearly import YearWindowStrategy

__all__ = ["BiweeklyUpdate"]


class BiweeklyUpdate(YearWindowStrategy):
    name = "BiweeklyUpdate"
    description = "Update all subjects released in the previous two years"

    def __init__(self, *args: Any, cooldown_days: int = 14, **kwargs: Any) -> None:
        super().__init__(*args, cooldown_days=cooldown_days, **kwargs)

    def target_years(self) -> FrozenSet[int]:
        year = self._clock().year
        return frozenset({year - 2, year - 1})

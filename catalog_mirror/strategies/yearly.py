"""Year-window sync strategies.

Both scan the whole listing and sync only subjects whose release year
falls in a window relative to the current year.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Callable, Dict, FrozenSet

from catalog_mirror.lib.cooldown import parse_date, utcnow
from catalog_mirror.models import SyncOptions
from catalog_mirror.strategies.base import SyncStrategy

__all__ = ["YearWindowStrategy", "YearlyUpdate"]


class YearWindowStrategy(SyncStrategy):
    """Full listing scan filtered to ``target_years()``.

    Every scanned subject counts toward progress; only matching subjects
    count as processed. Subjects without a date are skipped silently and
    subjects with an unparsable date are recorded as errors.
    """

    def __init__(
        self,
        *args: Any,
        cooldown_days: int = 3,
        clock: Callable = utcnow,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.cooldown_days = cooldown_days
        self._clock = clock

    @abstractmethod
    def target_years(self) -> FrozenSet[int]:
        """Release years this strategy syncs."""
        ...

    def _do_execute(self, options: SyncOptions) -> None:
        cooldown = self.cooldown_days if options.cooldown_days is None else options.cooldown_days
        years = self.target_years()
        self.log.info("Syncing subjects released in %s", ", ".join(str(y) for y in sorted(years)))

        def handle(payload: Dict[str, Any]) -> None:
            subject = self._subject_from_payload(payload)
            if subject is None or not subject.date:
                return
            released = parse_date(subject.date)
            if released is None:
                self._record_error(subject.id, f"Unparsable date {subject.date!r}")
                return
            if released.year in years:
                self._sync_subject(subject, cooldown, options)

        scanned = self._sync_pages(
            self._base_filters(),
            handle,
            page_size=self._page_size(options),
        )
        self.log.info(
            "%s scanned %d subjects, synced %d",
            self.name,
            scanned,
            self._subjects_processed,
        )


class YearlyUpdate(YearWindowStrategy):
    name = "YearlyUpdate"
    description = "Update all subjects released this year or next year"

    def target_years(self) -> FrozenSet[int]:
        year = self._clock().year
        return frozenset({year, year + 1})

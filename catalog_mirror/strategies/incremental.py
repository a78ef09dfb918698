"""Daily incremental sync of newly listed subjects."""

from __future__ import annotations

from typing import Any, Dict

from catalog_mirror.models import SyncOptions
from catalog_mirror.strategies.base import SyncStrategy

__all__ = ["DailyIncremental"]


class DailyIncremental(SyncStrategy):
    """Syncs the tail of the listing that is not mirrored yet.

    Processes listing offsets ``[max(0, local - buffer), online_total)``,
    where ``local`` is the number of mirrored subjects. The buffer re-reads
    the last few known subjects in case upstream inserted before them.
    """

    name = "DailyIncremental"
    description = "Daily incremental update of newly added subjects"

    def __init__(self, *args: Any, cooldown_days: int = 3, buffer: int = 50, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.cooldown_days = cooldown_days
        self.buffer = buffer

    def _do_execute(self, options: SyncOptions) -> None:
        cooldown = self.cooldown_days if options.cooldown_days is None else options.cooldown_days
        filters = self._base_filters()

        online_total = self._online_total(filters)
        local_total = self.store.count_subjects({"type": self.subject_type})

        start = max(0, local_total - self.buffer)
        end = online_total
        if start >= end:
            self.log.info(
                "No new subjects to sync (local=%d, online=%d)", local_total, online_total
            )
            return

        self.log.info("Syncing listing offsets %d to %d", start, end)

        def handle(payload: Dict[str, Any]) -> None:
            subject = self._subject_from_payload(payload)
            if subject is not None:
                self._sync_subject(subject, cooldown, options)

        self._sync_pages(
            filters,
            handle,
            page_size=self._page_size(options),
            start=start,
            end=end,
        )

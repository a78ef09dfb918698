"""Monthly rotation through the catalog by release month.

The rotation cursor selects one of thirteen buckets per run: bucket 0
holds subjects without a date, buckets 1-12 the subjects released in
that calendar month of any year. Every run advances the cursor, so the
whole catalog is revisited once every thirteen runs.
"""

from __future__ import annotations

import calendar
import logging
from typing import Any, Dict, Optional

from catalog_mirror.lib.cooldown import CooldownPolicy
from catalog_mirror.lib.errors import InvalidMonthError
from catalog_mirror.lib.state import StateStore
from catalog_mirror.models import RotationStatus, SyncOptions
from catalog_mirror.strategies.base import SyncStrategy

logger = logging.getLogger(__name__)

__all__ = [
    "MonthlyRotation",
    "RotationCursor",
    "ROTATION_BUCKETS",
    "month_display_name",
    "get_rotation_status",
    "reset_rotation_month",
]

ROTATION_BUCKETS = 13
DEFAULT_ROTATION_KEY = "bangumi:monthly_rotation:current_month"


def month_display_name(month: int) -> str:
    if month == 0:
        return "No date"
    return calendar.month_name[month]


class RotationCursor:
    """Persisted position of the monthly rotation, always in ``0..12``."""

    def __init__(self, store: StateStore, key: str = DEFAULT_ROTATION_KEY) -> None:
        self.store = store
        self.key = key

    def current(self) -> int:
        """Current bucket. Falls back to 0 on a missing, invalid or unreadable value."""
        try:
            raw = self.store.get(self.key)
        except Exception as exc:
            logger.warning("Could not read rotation cursor %s, using 0: %s", self.key, exc)
            return 0
        if raw is None:
            return 0
        try:
            month = int(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid rotation cursor %s=%r", self.key, raw)
            return 0
        if not 0 <= month < ROTATION_BUCKETS:
            logger.warning("Ignoring out-of-range rotation cursor %s=%d", self.key, month)
            return 0
        return month

    def advance(self) -> int:
        """Move to the next bucket and return it."""
        next_month = (self.current() + 1) % ROTATION_BUCKETS
        self.store.set(self.key, str(next_month))
        logger.info("Rotation cursor advanced to %s", month_display_name(next_month))
        return next_month

    def reset(self, month: int) -> None:
        """Set the cursor to ``month``.

        Raises:
            InvalidMonthError: If ``month`` is not an integer in 0..12
        """
        if isinstance(month, bool) or not isinstance(month, int) or not 0 <= month <= 12:
            raise InvalidMonthError(month)
        self.store.set(self.key, str(month))
        logger.info("Rotation cursor reset to %s", month_display_name(month))

    def status(self) -> RotationStatus:
        current = self.current()
        next_month = (current + 1) % ROTATION_BUCKETS
        return RotationStatus(
            current_month=current,
            display_name=month_display_name(current),
            next_month=next_month,
            next_display_name=month_display_name(next_month),
        )


def get_rotation_status(cursor: RotationCursor) -> RotationStatus:
    return cursor.status()


def reset_rotation_month(cursor: RotationCursor, month: int) -> None:
    cursor.reset(month)


class MonthlyRotation(SyncStrategy):
    """Syncs the bucket under the rotation cursor, then advances it.

    The cursor advances after every run, whether the bucket was empty,
    stopped early or failed, so one bad bucket never stalls the rotation.

    Dated subjects take their cooldown from ``cooldown_policy`` when one is
    given. Undated subjects, and every subject when no policy is given,
    use the flat ``cooldown_days``.
    """

    name = "MonthlyRotation"
    description = "Monthly rotation update, one release month per run"

    def __init__(
        self,
        *args: Any,
        cursor: RotationCursor,
        cooldown_days: int = 60,
        cooldown_policy: Optional[CooldownPolicy] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.cursor = cursor
        self.cooldown_days = cooldown_days
        self.cooldown_policy = cooldown_policy

    def _do_execute(self, options: SyncOptions) -> None:
        month = self.cursor.current()
        self.log.info("Current rotation month: %s", month_display_name(month))

        try:
            if month == 0:
                self._sync_undated(options)
            else:
                self._sync_month(month, options)
        finally:
            self.cursor.advance()

        self.log.info(
            "Monthly rotation completed: %d subjects processed", self._subjects_processed
        )

    def _cooldown_for(self, date: Optional[str], options: SyncOptions) -> int:
        if options.cooldown_days is not None:
            return options.cooldown_days
        if self.cooldown_policy is None or not date:
            return self.cooldown_days
        return self.cooldown_policy.cooldown_days(date)

    def _sync_undated(self, options: SyncOptions) -> None:
        subject_ids = self.store.find_ids_missing_date({"type": self.subject_type})
        if not subject_ids:
            self.log.info("No subjects without a date found")
            return

        self.log.info("Found %d subjects without a date", len(subject_ids))
        total = len(subject_ids)
        self._update_progress(0, total)

        for processed, subject_id in enumerate(subject_ids, start=1):
            if self._should_stop():
                break
            try:
                payload = self.catalog.get_subject(subject_id)
                subject = self._subject_from_payload(payload)
                if subject is not None:
                    self._sync_subject(subject, self._cooldown_for(subject.date, options), options)
            except Exception as exc:
                self.log.warning("Failed to sync subject %s: %s", subject_id, exc)
                self._record_error(subject_id, exc)
            self._update_progress(processed, total)

    def _sync_month(self, month: int, options: SyncOptions) -> None:
        filters = dict(self._base_filters(), month=month)

        def handle(payload: Dict[str, Any]) -> None:
            subject = self._subject_from_payload(payload)
            if subject is not None:
                self._sync_subject(subject, self._cooldown_for(subject.date, options), options)

        scanned = self._sync_pages(filters, handle, page_size=self._page_size(options))
        if scanned == 0:
            self.log.info("No subjects found for %s", month_display_name(month))

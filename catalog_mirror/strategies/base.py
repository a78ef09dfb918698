"""Base class for sync strategies.

A strategy is a named, stoppable unit of sync work with an
``Idle -> Running -> Idle`` lifecycle. ``execute()`` never raises once
the run has started: anything escaping the strategy's work routine is
captured into the returned ``SyncResult``. The only error it raises is
the up-front rejection of a second concurrent run.

Subclasses implement ``_do_execute(options)`` and usually delegate the
listing walk to ``_sync_pages()``.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from catalog_mirror.lib.catalog import CatalogClient
from catalog_mirror.lib.errors import StrategyAlreadyRunningError
from catalog_mirror.lib.observability import get_sync_logger
from catalog_mirror.lib.store import DocumentStore
from catalog_mirror.models import (
    Subject,
    SyncErrorRecord,
    SyncOptions,
    SyncProgress,
    SyncResult,
    round_half_up,
)
from catalog_mirror.sync import SubjectSyncService

__all__ = ["SyncStrategy", "SubjectHandler"]

# Called with each raw listing item; returns nothing.
SubjectHandler = Callable[[Dict[str, Any]], None]


class SyncStrategy(ABC):
    """Named sync job with cooperative stop and progress reporting."""

    name: str = "Base"
    description: str = ""

    def __init__(
        self,
        catalog: CatalogClient,
        store: DocumentStore,
        *,
        sync_service: Optional[SubjectSyncService] = None,
        subject_type: int = 2,
        batch_size: int = 50,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.sync_service = sync_service or SubjectSyncService(catalog, store)
        self.subject_type = subject_type
        self.batch_size = batch_size
        self.log = get_sync_logger(f"catalog_mirror.strategies.{self.name}", self.name)

        self._state_lock = threading.Lock()
        self._running = False
        self._stop_requested = threading.Event()
        self._progress = SyncProgress()
        self._subjects_processed = 0
        self._characters_processed = 0
        self._errors: List[SyncErrorRecord] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def execute(self, options: Optional[SyncOptions] = None) -> SyncResult:
        """Run the strategy to completion, stop or failure.

        Raises:
            StrategyAlreadyRunningError: If a run is already in progress
        """
        with self._state_lock:
            if self._running:
                raise StrategyAlreadyRunningError(self.name)
            self._running = True
            self._stop_requested.clear()
            self._progress = SyncProgress()
            self._subjects_processed = 0
            self._characters_processed = 0
            self._errors = []

        options = options or SyncOptions()
        started = time.monotonic()
        self.log.start_run()

        try:
            self.log.info("Starting sync strategy %s", self.name)
            self._do_execute(options)
        except Exception as exc:
            self.log.exception("Error in sync strategy %s: %s", self.name, exc)
            self._record_error(0, exc)
        finally:
            duration_ms = round_half_up((time.monotonic() - started) * 1000)
            result = SyncResult(
                subjects_processed=self._subjects_processed,
                characters_processed=self._characters_processed,
                errors=tuple(self._errors),
                duration_ms=duration_ms,
            )
            self.log.info(
                "Sync strategy %s finished in %dms: %d subjects, %d characters, %d errors",
                self.name,
                duration_ms,
                result.subjects_processed,
                result.characters_processed,
                len(result.errors),
            )
            self.log.end_run()
            with self._state_lock:
                self._running = False

        return result

    @abstractmethod
    def _do_execute(self, options: SyncOptions) -> None:
        """Strategy-specific work."""
        ...

    def stop(self) -> None:
        """Ask the running job to stop at its next checkpoint."""
        if self._running:
            self.log.info("Stopping sync strategy %s", self.name)
        self._stop_requested.set()

    def get_progress(self) -> SyncProgress:
        progress = self._progress
        return SyncProgress(progress.current, progress.total, progress.percentage)

    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _update_progress(self, current: int, total: int) -> None:
        self._progress = SyncProgress.of(current, total)

    def _record_error(self, subject_id: int, error: Any) -> None:
        message = str(error) or type(error).__name__
        self._errors.append(SyncErrorRecord(subject_id, message))

    def _should_stop(self) -> bool:
        if self._stop_requested.is_set():
            self.log.info("Sync strategy %s stopped by request", self.name)
            return True
        return False

    def _page_size(self, options: SyncOptions) -> int:
        return options.batch_size or self.batch_size

    def _base_filters(self) -> Dict[str, Any]:
        return {"type": self.subject_type}

    def _online_total(self, filters: Dict[str, Any]) -> int:
        return self.catalog.list_subjects(filters, 1, 0).total

    def _sync_subject(
        self,
        subject: Subject,
        cooldown_days: int,
        options: SyncOptions,
    ) -> None:
        """Sync one subject and fold its outcome into the run totals."""
        outcome = self.sync_service.sync_subject(
            subject,
            cooldown_days=cooldown_days,
            skip_characters=options.skip_characters,
        )
        self._subjects_processed += 1
        self._characters_processed += outcome.characters_processed
        self._errors.extend(outcome.errors)

    def _subject_from_payload(self, payload: Dict[str, Any]) -> Optional[Subject]:
        try:
            return Subject.from_payload(payload)
        except (TypeError, ValueError) as exc:
            self._record_error(_payload_id(payload), f"Malformed subject payload: {exc}")
            return None

    def _sync_pages(
        self,
        filters: Dict[str, Any],
        handle: SubjectHandler,
        *,
        page_size: int,
        start: int = 0,
        end: Optional[int] = None,
    ) -> int:
        """Walk the listing from ``start`` and hand each item to ``handle``.

        Stops at ``end`` (exclusive) when given, otherwise at the total
        reported by the listing. A page that fails to load is recorded as
        an error and skipped. Progress is reported against the number of
        items between ``start`` and the end.

        Returns:
            Number of items handed to ``handle``
        """
        offset = start
        limit = end
        if limit is None:
            limit = self._online_total(filters)
        scanned = 0
        self._update_progress(0, max(limit - start, 0))

        while offset < limit:
            if self._should_stop():
                break

            try:
                page = self.catalog.list_subjects(filters, page_size, offset)
            except Exception as exc:
                self.log.warning("Failed to fetch page at offset %d: %s", offset, exc)
                self._record_error(0, f"Failed to fetch page at offset {offset}: {exc}")
                offset += page_size
                continue

            if end is None:
                limit = page.total
            if not page.items:
                break

            for index, payload in enumerate(page.items):
                if offset + index >= limit:
                    break
                if self._should_stop():
                    return scanned
                try:
                    handle(payload)
                except Exception as exc:
                    self.log.warning("Failed to process subject %s: %s", _payload_id(payload), exc)
                    self._record_error(_payload_id(payload), exc)
                scanned += 1
                self._update_progress(scanned, max(limit - start, 0))

            offset += page_size

        return scanned


def _payload_id(payload: Any) -> int:
    try:
        return int(payload.get("id", 0))
    except (AttributeError, TypeError, ValueError):
        return 0

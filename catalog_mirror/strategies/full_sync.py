"""Resumable backfill of the whole catalog.

The job walks the listing page by page, saving the next offset after
every page so an interrupted run resumes where it stopped. Page fetches
go through a circuit breaker: each failure is retried at the same offset
after a fixed backoff, and sustained failure aborts the job with a single
operator notification. The checkpoint survives the abort.
"""

from __future__ import annotations

from typing import Any, Optional

from catalog_mirror.lib.cooldown import CooldownPolicy
from catalog_mirror.lib.errors import SyncAbortedError
from catalog_mirror.lib.notify import LogNotifier, Notifier
from catalog_mirror.lib.resilience import CircuitBreaker, CircuitBreakerOpen
from catalog_mirror.lib.state import Checkpoint
from catalog_mirror.models import Page, SyncOptions
from catalog_mirror.strategies.base import SyncStrategy

__all__ = ["FullSync"]


class FullSync(SyncStrategy):
    name = "FullSync"
    description = "Checkpointed backfill of the entire catalog"

    def __init__(
        self,
        *args: Any,
        checkpoint: Checkpoint,
        breaker: Optional[CircuitBreaker] = None,
        notifier: Optional[Notifier] = None,
        channel: str = "sync-alerts",
        cooldown_policy: Optional[CooldownPolicy] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.checkpoint = checkpoint
        self.breaker = breaker or CircuitBreaker()
        self.notifier = notifier or LogNotifier()
        self.channel = channel
        self.cooldown_policy = cooldown_policy or CooldownPolicy()

    def _do_execute(self, options: SyncOptions) -> None:
        page_size = self._page_size(options)
        filters = self._base_filters()
        self.breaker.reset()

        offset = self.checkpoint.load()
        total = 0
        if offset:
            self.log.info("Resuming full sync from offset %d", offset)

        try:
            total = self._fetch(lambda: self.catalog.list_subjects(filters, 1, 0), offset).total
            self._update_progress(offset, total)

            finished = offset >= total
            while not finished:
                if self._should_stop():
                    self.log.info("Full sync stopped at offset %d/%d", offset, total)
                    return

                current = offset
                page = self._fetch(
                    lambda: self.catalog.list_subjects(filters, page_size, current),
                    current,
                )
                total = page.total
                if not page.items:
                    finished = True
                    break

                for payload in page.items:
                    if self._should_stop():
                        self.log.info("Full sync stopped inside page at offset %d", offset)
                        return
                    self._sync_payload(payload, options)

                offset += page_size
                self.checkpoint.save(offset)
                self._update_progress(offset, total)
                finished = offset >= total
        except CircuitBreakerOpen as exc:
            self._escalate(offset, total, exc)
            raise SyncAbortedError(
                f"Full sync aborted after {exc.failures} consecutive failures",
                strategy=self.name,
                offset=offset,
                total=total,
                cause=exc.last_error,
                suggestion="The checkpoint was kept; the next run resumes from this offset.",
            ) from exc

        self.checkpoint.clear()
        self._update_progress(total, total)
        self.log.info("Full sync reached the end of the catalog (%d subjects)", total)

    def _fetch(self, operation: Any, offset: int) -> Page:
        def on_failure(exc: BaseException, failures: int) -> None:
            self._record_error(0, f"Failed to fetch page at offset {offset}: {exc}")

        return self.breaker.call(
            operation,
            on_failure=on_failure,
            operation_name=f"page fetch at offset {offset}",
        )

    def _sync_payload(self, payload: Any, options: SyncOptions) -> None:
        subject = self._subject_from_payload(payload)
        if subject is None:
            return
        cooldown = (
            options.cooldown_days
            if options.cooldown_days is not None
            else self.cooldown_policy.cooldown_days(subject.date)
        )
        try:
            self._sync_subject(subject, cooldown, options)
        except Exception as exc:
            self.log.warning("Failed to process subject %s: %s", subject.id, exc)
            self._record_error(subject.id, exc)

    def _escalate(self, offset: int, total: int, exc: CircuitBreakerOpen) -> None:
        message = (
            f"{self.name} aborted at offset {offset}/{total} after "
            f"{exc.failures} consecutive failures. Last error: {exc.last_error}"
        )
        try:
            self.notifier.notify(self.channel, message)
        except Exception as notify_exc:
            self.log.error("Failed to send abort notification: %s", notify_exc)

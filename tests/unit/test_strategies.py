"""Tests for the strategy lifecycle and the listing-based strategies."""

import threading
from datetime import datetime, timezone

import pytest

from catalog_mirror.lib.errors import StrategyAlreadyRunningError
from catalog_mirror.models import SyncOptions, SyncResult
from catalog_mirror.strategies.base import SyncStrategy
from catalog_mirror.strategies.biweekly import BiweeklyUpdate
from catalog_mirror.strategies.incremental import DailyIncremental
from catalog_mirror.strategies.yearly import YearWindowStrategy, YearlyUpdate
from tests.fakes import FakeCatalog, make_subjects, seed_store


def _clock():
    return datetime(2025, 6, 1, tzinfo=timezone.utc)


class ControlledStrategy(SyncStrategy):
    """Strategy whose work routine is scripted by the test."""

    name = "Controlled"
    description = "test double"

    def __init__(self, *args, work=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.work = work or (lambda strategy, options: None)

    def _do_execute(self, options):
        self.work(self, options)


class TestSyncStrategyLifecycle:
    """Idle -> Running -> Idle transitions of SyncStrategy.execute()."""

    def test_returns_result_and_goes_idle(self, store):
        strategy = ControlledStrategy(FakeCatalog(), store)
        result = strategy.execute()
        assert isinstance(result, SyncResult)
        assert result.succeeded
        assert result.duration_ms >= 0
        assert not strategy.is_running()

    def test_escaping_error_captured_with_id_zero(self, store):
        def work(strategy, options):
            raise RuntimeError("listing exploded")

        strategy = ControlledStrategy(FakeCatalog(), store, work=work)
        result = strategy.execute()

        assert [(e.id, e.error) for e in result.errors] == [(0, "listing exploded")]
        assert not strategy.is_running()

    def test_second_execute_rejected_while_running(self, store):
        started, release = threading.Event(), threading.Event()

        def work(strategy, options):
            started.set()
            release.wait(5)

        strategy = ControlledStrategy(FakeCatalog(), store, work=work)
        thread = threading.Thread(target=strategy.execute)
        thread.start()
        assert started.wait(5)

        assert strategy.is_running()
        with pytest.raises(StrategyAlreadyRunningError):
            strategy.execute()

        release.set()
        thread.join(5)
        assert not strategy.is_running()
        assert strategy.execute().succeeded

    def test_accumulators_reset_between_runs(self, store):
        def work(strategy, options):
            strategy._record_error(7, "bad")
            strategy._update_progress(3, 4)

        strategy = ControlledStrategy(FakeCatalog(), store, work=work)
        strategy.execute()
        result = strategy.execute()

        assert len(result.errors) == 1
        assert strategy.get_progress().current == 3

    def test_progress_is_a_copy(self, store):
        def work(strategy, options):
            strategy._update_progress(1, 3)

        strategy = ControlledStrategy(FakeCatalog(), store, work=work)
        strategy.execute()
        progress = strategy.get_progress()
        progress.current = 99
        assert strategy.get_progress().current == 1
        assert strategy.get_progress().percentage == 33

    def test_progress_rounds_half_up(self, store):
        def work(strategy, options):
            strategy._update_progress(1, 8)

        strategy = ControlledStrategy(FakeCatalog(), store, work=work)
        strategy.execute()
        assert strategy.get_progress().percentage == 13

    def test_stop_is_cooperative(self, store):
        seen = []

        def work(strategy, options):
            strategy.stop()
            seen.append(strategy._should_stop())

        ControlledStrategy(FakeCatalog(), store, work=work).execute()
        assert seen == [True]


class TestDailyIncremental:
    """Tests for DailyIncremental offset selection."""

    def test_processes_tail_with_buffer(self, store):
        """local=150, online=210 processes exactly listing indices [100, 210)."""
        seed_store(store, 150)
        catalog = FakeCatalog(make_subjects(210))

        result = DailyIncremental(catalog, store, buffer=50).execute(SyncOptions(skip_characters=True))

        assert result.subjects_processed == 110
        page_offsets = [c["offset"] for c in catalog.page_calls if c["limit"] != 1]
        assert page_offsets == [100, 150, 200]
        assert store.find_subject(100) is None
        assert store.find_subject(101) is not None
        assert store.find_subject(210) is not None

    def test_progress_counts_against_range(self, store):
        seed_store(store, 150)
        strategy = DailyIncremental(FakeCatalog(make_subjects(210)), store)
        strategy.execute(SyncOptions(skip_characters=True))
        assert strategy.get_progress().to_dict() == {"current": 110, "total": 110, "percentage": 100}

    def test_nothing_new(self, store):
        seed_store(store, 100)
        catalog = FakeCatalog(make_subjects(40))

        result = DailyIncremental(catalog, store).execute()

        assert result.subjects_processed == 0
        assert [c for c in catalog.page_calls if c["limit"] != 1] == []

    def test_empty_store_starts_at_zero(self, store):
        catalog = FakeCatalog(make_subjects(5))
        result = DailyIncremental(catalog, store, batch_size=2).execute(SyncOptions(skip_characters=True))
        assert result.subjects_processed == 5

    def test_uses_daily_cooldown_and_override(self, store):
        catalog = FakeCatalog(make_subjects(1), characters={1: [{"id": 10}]})
        strategy = DailyIncremental(catalog, store, cooldown_days=3)
        strategy.execute()
        strategy.execute()
        assert catalog.character_calls == [10]

        strategy.execute(SyncOptions(cooldown_days=0))
        assert catalog.character_calls == [10, 10]

    def test_batch_size_override(self, store):
        catalog = FakeCatalog(make_subjects(6))
        DailyIncremental(catalog, store).execute(SyncOptions(batch_size=4, skip_characters=True))
        assert [c["limit"] for c in catalog.page_calls if c["limit"] != 1] == [4, 4]

    def test_page_failure_recorded_and_skipped(self, store):
        catalog = FakeCatalog(make_subjects(6))
        catalog.fail_pages = {2: 1}

        result = DailyIncremental(catalog, store, batch_size=2).execute(SyncOptions(skip_characters=True))

        assert result.subjects_processed == 4
        assert result.errors[0].id == 0
        assert "offset 2" in result.errors[0].error

    def test_stop_between_subjects(self, store):
        catalog = FakeCatalog(make_subjects(20))
        strategy = DailyIncremental(catalog, store, batch_size=5)
        original = strategy._sync_subject

        def sync_then_stop(subject, cooldown, options):
            original(subject, cooldown, options)
            if subject.id == 3:
                strategy.stop()

        strategy._sync_subject = sync_then_stop
        result = strategy.execute(SyncOptions(skip_characters=True))

        assert result.subjects_processed == 3
        assert not strategy.is_running()


class TestYearWindowStrategies:
    """Tests for YearlyUpdate and BiweeklyUpdate."""

    SUBJECTS = [
        {"id": 1, "type": 2, "date": "2025-04-01"},
        {"id": 2, "type": 2, "date": "2026-01-10"},
        {"id": 3, "type": 2, "date": "2024-07-01"},
        {"id": 4, "type": 2, "date": "2023-10-01"},
        {"id": 5, "type": 2, "date": None},
        {"id": 6, "type": 2, "date": "2025-99-99"},
        {"id": 7, "type": 2, "date": "2010-01-01"},
    ]

    def test_yearly_window(self, store):
        strategy = YearlyUpdate(FakeCatalog(self.SUBJECTS), store, clock=_clock, batch_size=3)
        result = strategy.execute(SyncOptions(skip_characters=True))

        assert result.subjects_processed == 2
        assert store.find_subject(1) and store.find_subject(2)
        assert store.find_subject(3) is None

    def test_biweekly_window(self, store):
        strategy = BiweeklyUpdate(FakeCatalog(self.SUBJECTS), store, clock=_clock)
        result = strategy.execute(SyncOptions(skip_characters=True))

        assert result.subjects_processed == 2
        assert store.find_subject(3) and store.find_subject(4)

    def test_progress_counts_every_scanned_subject(self, store):
        strategy = YearlyUpdate(FakeCatalog(self.SUBJECTS), store, clock=_clock, batch_size=3)
        strategy.execute(SyncOptions(skip_characters=True))
        assert strategy.get_progress().current == len(self.SUBJECTS)

    def test_undated_skipped_silently_unparsable_recorded(self, store):
        strategy = YearlyUpdate(FakeCatalog(self.SUBJECTS), store, clock=_clock)
        result = strategy.execute(SyncOptions(skip_characters=True))

        assert [e.id for e in result.errors] == [6]
        assert store.find_subject(5) is None

    def test_cooldowns(self, store):
        assert YearlyUpdate(FakeCatalog(), store).cooldown_days == 3
        assert BiweeklyUpdate(FakeCatalog(), store).cooldown_days == 14

    def test_year_window_base_is_abstract(self, store):
        with pytest.raises(TypeError):
            YearWindowStrategy(FakeCatalog(), store)

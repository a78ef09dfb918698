"""Tests for the checkpointed FullSync backfill."""

import logging

import pytest

from catalog_mirror.lib.resilience import CircuitBreaker
from catalog_mirror.lib.state import Checkpoint, FileStateStore
from catalog_mirror.models import SyncOptions
from catalog_mirror.strategies.full_sync import FullSync
from tests.fakes import FakeCatalog, RecordingNotifier, make_subjects

OPTIONS = SyncOptions(skip_characters=True)


@pytest.fixture
def checkpoint(state_store):
    return Checkpoint(state_store, "bangumi:full_sync:offset")


def _full_sync(catalog, store, checkpoint, notifier, no_sleep, batch_size=2, **kwargs):
    return FullSync(
        catalog,
        store,
        checkpoint=checkpoint,
        breaker=CircuitBreaker(3, 30, sleep=no_sleep),
        notifier=notifier,
        batch_size=batch_size,
        **kwargs,
    )


class TestFullSyncCompletion:
    def test_walks_whole_catalog_and_clears_checkpoint(self, store, checkpoint, notifier, no_sleep):
        catalog = FakeCatalog(make_subjects(10))
        strategy = _full_sync(catalog, store, checkpoint, notifier, no_sleep)

        result = strategy.execute(OPTIONS)

        assert result.succeeded
        assert result.subjects_processed == 10
        assert checkpoint.load() == 0
        assert strategy.get_progress().to_dict() == {"current": 10, "total": 10, "percentage": 100}
        assert notifier.messages == []

    def test_saves_checkpoint_after_every_page(self, store, checkpoint, notifier, no_sleep):
        catalog = FakeCatalog(make_subjects(6))
        saved = []
        original_save = checkpoint.save
        checkpoint.save = lambda offset: saved.append(offset) or original_save(offset)

        _full_sync(catalog, store, checkpoint, notifier, no_sleep).execute(OPTIONS)

        assert saved == [2, 4, 6]

    def test_empty_catalog(self, store, checkpoint, notifier, no_sleep):
        result = _full_sync(FakeCatalog(), store, checkpoint, notifier, no_sleep).execute(OPTIONS)
        assert result.succeeded
        assert result.subjects_processed == 0

    def test_resumes_from_checkpoint(self, store, checkpoint, notifier, no_sleep):
        checkpoint.save(6)
        catalog = FakeCatalog(make_subjects(10))

        result = _full_sync(catalog, store, checkpoint, notifier, no_sleep).execute(OPTIONS)

        assert result.subjects_processed == 4
        assert catalog.page_offsets() == [6, 8]
        assert store.find_subject(6) is None
        assert store.find_subject(7) is not None

    def test_transient_failures_recover(self, store, checkpoint, notifier, no_sleep):
        catalog = FakeCatalog(make_subjects(10))
        catalog.fail_pages = {2: 2}

        result = _full_sync(catalog, store, checkpoint, notifier, no_sleep).execute(OPTIONS)

        assert result.subjects_processed == 10
        assert [e.id for e in result.errors] == [0, 0]
        assert all("offset 2" in e.error for e in result.errors)
        assert no_sleep.delays == [30, 30]
        assert notifier.messages == []
        assert checkpoint.load() == 0


class TestFullSyncAbort:
    def test_aborts_after_three_failures_and_keeps_checkpoint(
        self, store, checkpoint, notifier, no_sleep
    ):
        """Ten pages, three consecutive failures at offset 4."""
        catalog = FakeCatalog(make_subjects(10))
        catalog.fail_pages = {4: 3}
        strategy = _full_sync(catalog, store, checkpoint, notifier, no_sleep, batch_size=1)

        result = strategy.execute(OPTIONS)

        assert result.subjects_processed == 4
        assert checkpoint.load() == 4
        assert len(notifier.messages) == 1
        channel, message = notifier.messages[0]
        assert channel == "sync-alerts"
        assert "offset 4/10" in message
        assert "upstream timeout" in message

        page_errors = [e for e in result.errors if "Failed to fetch page at offset 4" in e.error]
        assert len(page_errors) == 3
        assert any("aborted" in e.error for e in result.errors)
        assert all(e.id == 0 for e in result.errors)
        assert no_sleep.delays == [30, 30]
        assert not strategy.is_running()

    def test_next_run_resumes_at_failed_offset(self, store, checkpoint, notifier, no_sleep):
        catalog = FakeCatalog(make_subjects(10))
        catalog.fail_pages = {4: 3}
        strategy = _full_sync(catalog, store, checkpoint, notifier, no_sleep, batch_size=1)
        strategy.execute(OPTIONS)
        catalog.page_calls.clear()

        result = strategy.execute(OPTIONS)

        assert result.succeeded
        assert result.subjects_processed == 6
        assert catalog.page_calls[0]["limit"] == 1
        assert catalog.page_offsets() == [4, 5, 6, 7, 8, 9]
        assert checkpoint.load() == 0
        assert len(notifier.messages) == 1

    def test_notifier_failure_only_logged(self, store, checkpoint, no_sleep, caplog):
        catalog = FakeCatalog(make_subjects(10))
        catalog.fail_pages = {0: 3}
        notifier = RecordingNotifier(fail=True)
        strategy = _full_sync(catalog, store, checkpoint, notifier, no_sleep)

        with caplog.at_level(logging.ERROR):
            result = strategy.execute(OPTIONS)

        assert len(notifier.messages) == 1
        assert "Failed to send abort notification" in caplog.text
        assert any("aborted" in e.error for e in result.errors)
        assert not strategy.is_running()


class TestFullSyncStop:
    def test_stop_keeps_checkpoint(self, store, checkpoint, notifier, no_sleep):
        catalog = FakeCatalog(make_subjects(10))
        strategy = _full_sync(catalog, store, checkpoint, notifier, no_sleep)

        def stop_at(offset):
            if offset == 4:
                strategy.stop()

        catalog.on_page = stop_at
        result = strategy.execute(OPTIONS)

        assert result.succeeded
        assert result.subjects_processed == 4
        assert checkpoint.load() == 4

    def test_cooldown_from_policy_unless_overridden(self, store, checkpoint, notifier, no_sleep):
        catalog = FakeCatalog(make_subjects(1), characters={1: [{"id": 5}]})
        strategy = _full_sync(catalog, store, checkpoint, notifier, no_sleep)

        strategy.execute()
        strategy.execute()
        assert catalog.character_calls == [5]

        strategy.execute(SyncOptions(cooldown_days=0))
        assert catalog.character_calls == [5, 5]


class TestFullSyncCorruptCheckpoint:
    def test_corrupt_checkpoint_file_restarts_from_zero(self, store, notifier, no_sleep, tmp_path):
        (tmp_path / "bangumi_full_sync_offset.json").write_text("[1, 2]")
        checkpoint = Checkpoint(FileStateStore(tmp_path), "bangumi:full_sync:offset")
        catalog = FakeCatalog(make_subjects(4))

        result = _full_sync(catalog, store, checkpoint, notifier, no_sleep).execute(OPTIONS)

        assert result.succeeded
        assert result.subjects_processed == 4
        assert catalog.page_offsets() == [0, 2]
        assert checkpoint.load() == 0

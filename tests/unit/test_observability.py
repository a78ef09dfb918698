"""Tests for logging setup and the strategy-aware logger."""

import json
import logging

from catalog_mirror.lib.observability import JSONFormatter, SyncLogger, setup_logging


class TestJSONFormatter:
    def test_renders_json_with_extra(self):
        record = logging.LogRecord("catalog_mirror.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.strategy = "FullSync"
        payload = json.loads(JSONFormatter().format(record))
        assert payload["message"] == "hello world"
        assert payload["level"] == "INFO"
        assert payload["extra"] == {"strategy": "FullSync"}

    def test_exclude_fields(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", (), None)
        record.run_id = "abc"
        payload = json.loads(JSONFormatter(exclude_fields=["run_id"]).format(record))
        assert "extra" not in payload


class TestSyncLogger:
    def test_context_attached(self, caplog):
        log = SyncLogger("catalog_mirror.tests", "DailyIncremental")
        run_id = log.start_run()
        with caplog.at_level(logging.INFO, logger="catalog_mirror.tests"):
            log.info("Starting %s", "run")
        record = caplog.records[-1]
        assert record.strategy == "DailyIncremental"
        assert record.run_id == run_id
        assert record.getMessage() == "Starting run"

    def test_end_run_drops_run_id(self):
        log = SyncLogger("x", "S")
        log.start_run()
        log.end_run()
        assert log.context == {"strategy": "S"}


class TestSetupLogging:
    def test_json_and_file(self, tmp_path):
        log_file = tmp_path / "mirror.log"
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging(verbose=True, json_format=True, log_file=str(log_file))
            assert root.level == logging.DEBUG
            assert any(isinstance(h.formatter, JSONFormatter) for h in root.handlers)
            assert logging.getLogger("httpx").level == logging.WARNING
            logging.getLogger("catalog_mirror.tests").info("to file")
            for handler in root.handlers:
                handler.flush()
            assert "to file" in log_file.read_text()
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
                handler.close()
            for handler in saved[0]:
                root.addHandler(handler)
            root.setLevel(saved[1])

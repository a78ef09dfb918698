"""Tests for the catalog mirror exception hierarchy."""

import pytest

from catalog_mirror.lib.errors import (
    CatalogRequestError,
    ConfigurationError,
    InvalidMonthError,
    MirrorError,
    StrategyAlreadyRunningError,
    StrategyNotFoundError,
    SyncAbortedError,
)


class TestMirrorError:
    def test_message_only(self):
        assert str(MirrorError("boom")) == "boom"

    def test_strategy_prefix_details_and_suggestion(self):
        err = MirrorError(
            "aborted",
            strategy="FullSync",
            details={"offset": 4},
            suggestion="Run it again",
        )
        text = str(err)
        assert text.startswith("[FullSync] aborted")
        assert "offset: 4" in text
        assert "Suggestion: Run it again" in text

    def test_to_dict(self):
        data = MirrorError("x", details={"a": 1}).to_dict()
        assert data["error_type"] == "MirrorError"
        assert data["details"] == {"a": 1}


class TestSpecificErrors:
    @pytest.mark.parametrize(
        "error",
        [
            ConfigurationError("bad"),
            CatalogRequestError("bad"),
            StrategyNotFoundError("X"),
            StrategyAlreadyRunningError("X"),
            InvalidMonthError(13),
            SyncAbortedError("bad", offset=0, total=0),
        ],
    )
    def test_all_are_mirror_errors(self, error):
        assert isinstance(error, MirrorError)

    def test_strategy_messages(self):
        assert str(StrategyNotFoundError("Foo")) == "Strategy Foo not found"
        assert str(StrategyAlreadyRunningError("Foo")) == "Strategy Foo is already running"

    def test_invalid_month_is_value_error(self):
        err = InvalidMonthError(13)
        assert isinstance(err, ValueError)
        assert err.month == 13

    def test_catalog_request_details(self):
        cause = TimeoutError("slow")
        err = CatalogRequestError("failed", path="/v0/subjects", status_code=503, cause=cause)
        assert err.details["status_code"] == 503
        assert err.details["cause_type"] == "TimeoutError"

    def test_configuration_field(self):
        err = ConfigurationError("bad qps", field="rate_limit.default_qps", value=0)
        assert err.details == {"field": "rate_limit.default_qps", "value": "0"}

    def test_sync_aborted_details(self):
        err = SyncAbortedError("stop", offset=4, total=10, cause=RuntimeError("503"))
        assert err.details == {"offset": 4, "total": 10, "last_error": "503"}

"""
Tests for the logging package.

Tests verify:
- Run context is scoped to a block and attached to log entries
- configure_logging is idempotent unless forced
- JSON output carries the bound identifiers
"""

import json
import logging
import threading

import pytest

from dbqa.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_context,
    get_logger,
    is_configured,
    log_context,
)
from dbqa.logging.context import add_context_processor


class TestLogContext:
    def test_to_dict_excludes_none(self):
        ctx = LogContext(query_id="q-1", trigger=None)
        assert ctx.to_dict() == {"query_id": "q-1"}

    def test_merge_creates_new_context(self):
        ctx1 = LogContext(query_id="q-1")
        ctx2 = ctx1.merge(trigger="manual", unknown="ignored")

        assert ctx1.trigger is None
        assert ctx2.query_id == "q-1"
        assert ctx2.trigger == "manual"
        assert "unknown" not in ctx2.to_dict()


class TestContextManagement:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_context(self):
        bind_context(query_id="q-1")
        bind_context(run_id="r-1")
        assert get_context().to_dict() == {"query_id": "q-1", "run_id": "r-1"}

    def test_log_context_is_scoped(self):
        bind_context(query_id="outer")
        with log_context(query_id="inner", alert_id="a-1") as ctx:
            assert ctx.query_id == "inner"
            assert get_context().alert_id == "a-1"
        assert get_context().to_dict() == {"query_id": "outer"}

    def test_log_context_resets_on_error(self):
        with pytest.raises(RuntimeError):
            with log_context(query_id="q-1"):
                raise RuntimeError("boom")
        assert get_context().query_id is None

    def test_threads_start_empty(self):
        seen = []
        with log_context(query_id="main"):
            worker = threading.Thread(target=lambda: seen.append(get_context().query_id))
            worker.start()
            worker.join()
        assert seen == [None]

    def test_processor_does_not_override_explicit_keys(self):
        with log_context(query_id="ctx", channel="email"):
            event = add_context_processor(None, "info", {"event": "x", "query_id": "explicit"})
        assert event == {"event": "x", "query_id": "explicit", "channel": "email"}


class TestConfigureLogging:
    def test_idempotent_unless_forced(self):
        configure_logging(level="INFO", force=True)
        assert is_configured() is True
        configure_logging(level="DEBUG")
        assert logging.getLogger("dbqa").level == logging.INFO
        configure_logging(level="DEBUG", force=True)
        assert logging.getLogger("dbqa").level == logging.DEBUG

    def test_env_level(self, monkeypatch):
        monkeypatch.setenv("DBQA_LOG_LEVEL", "warning")
        configure_logging(force=True)
        assert logging.getLogger("dbqa").level == logging.WARNING

    def test_json_output_includes_context(self, capsys):
        configure_logging(level="INFO", format="json", force=True)
        logger = get_logger("dbqa.tests")
        with log_context(query_id="q-1", trigger="schedule"):
            logger.info("check_started", rows=3)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["event"] == "check_started"
        assert entry["query_id"] == "q-1"
        assert entry["trigger"] == "schedule"
        assert entry["rows"] == 3
        assert entry["level"] == "info"

    def test_debug_suppressed_at_info(self, capsys):
        configure_logging(level="INFO", format="json", force=True)
        get_logger("dbqa.tests").debug("noisy")
        assert "noisy" not in capsys.readouterr().err

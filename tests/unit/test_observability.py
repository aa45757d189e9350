"""Testes de observabilidade: correlation id, filtro de log e mascaramento."""

from __future__ import annotations

import logging

import pytest

from powerwatch.observability.context import correlation_scope, get_correlation_id
from powerwatch.observability.logging import CorrelationIdFilter, configure_logging, mask_user_id
from powerwatch.observability.timing import timed


def _record() -> logging.LogRecord:
    return logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)


class TestCorrelationScope:
    def test_scope_sets_and_restores(self) -> None:
        assert get_correlation_id() == ""
        with correlation_scope() as cid:
            assert cid.startswith("cycle-")
            assert get_correlation_id() == cid
        assert get_correlation_id() == ""

    def test_filter_injects_fields(self) -> None:
        record = _record()
        with correlation_scope("pass") as cid:
            CorrelationIdFilter("powerwatch").filter(record)
        assert record.correlation_id == cid
        assert record.service == "powerwatch"

    def test_filter_keeps_explicit_id(self) -> None:
        record = _record()
        record.correlation_id = "explicit"
        CorrelationIdFilter("svc").filter(record)
        assert record.correlation_id == "explicit"


class TestLoggingHelpers:
    def test_mask_user_id(self) -> None:
        assert mask_user_id("1234567890") == "12345678..."
        assert mask_user_id("short") == "short"

    def test_configure_logging_installs_single_handler(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("DEBUG", "powerwatch")
            assert len(root.handlers) == 1
            assert any(isinstance(f, CorrelationIdFilter) for f in root.handlers[0].filters)
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)

    def test_timed_logs_latency(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="powerwatch.observability.timing"):
            with timed("monitor_pass", users=3):
                pass
        record = next(r for r in caplog.records if r.getMessage() == "component_latency")
        assert record.component == "monitor_pass"
        assert record.users == 3

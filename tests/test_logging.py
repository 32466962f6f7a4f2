"""
Tests for the logging module.

Tests verify:
- configure_logging emits JSON with service metadata
- DEBUG logs are suppressed at INFO level
- Bound context is merged into events
"""

import json

import pytest
import structlog

from cadence.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_from_settings,
    configure_logging,
    get_logger,
)
from cadence.core.settings import CadenceSettings


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def _json_lines(text):
    return [json.loads(line) for line in text.splitlines() if line.startswith("{")]


class TestConfigureLogging:
    def test_json_output_has_service(self, capsys):
        configure_logging(level="INFO", json_format=True, service="svc-test")
        get_logger("cadence.test").info("bounded.start", items=3)

        lines = _json_lines(capsys.readouterr().out)
        assert lines, "expected a JSON log line"
        event = lines[-1]
        assert event["event"] == "bounded.start"
        assert event["items"] == 3
        assert event["service.name"] == "svc-test"
        assert event["level"] == "info"

    def test_logger_name_in_output(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("cadence.execution.bounded").info("bounded.complete")

        event = _json_lines(capsys.readouterr().out)[-1]
        assert event["logger_name"] == "cadence.execution.bounded"

    def test_logger_created_before_configure(self, capsys):
        logger = get_logger("cadence.early")
        configure_logging(level="INFO", json_format=True, service="late")
        logger.info("retry.exhausted")

        event = _json_lines(capsys.readouterr().out)[-1]
        assert event["service.name"] == "late"
        assert event["logger_name"] == "cadence.early"

    def test_package_import(self):
        import cadence

        assert cadence.BoundedConcurrencyExecutor is not None

    def test_debug_suppressed_at_info(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("cadence.test").debug("debounce.fired")
        assert _json_lines(capsys.readouterr().out) == []

    def test_from_settings(self, capsys):
        configure_from_settings(
            CadenceSettings(log_level="DEBUG", json_logs=True, service="from-settings")
        )
        get_logger("cadence.test").debug("retry.attempt_failed", attempt=1)
        event = _json_lines(capsys.readouterr().out)[-1]
        assert event["service.name"] == "from-settings"
        assert event["attempt"] == 1


class TestContext:
    def test_bind_context_merged(self, capsys):
        configure_logging(level="INFO", json_format=True)
        bind_context(run_id="r-1")
        get_logger("cadence.test").info("bounded.complete")
        clear_context()
        assert _json_lines(capsys.readouterr().out)[-1]["run_id"] == "r-1"

    def test_log_context_scoped(self, capsys):
        configure_logging(level="INFO", json_format=True)
        logger = get_logger("cadence.test")
        with LogContext(batch="nightly"):
            logger.info("inside")
        logger.info("outside")
        inside, outside = _json_lines(capsys.readouterr().out)[-2:]
        assert inside["batch"] == "nightly"
        assert "batch" not in outside

    @pytest.mark.asyncio
    async def test_log_context_async(self, capsys):
        configure_logging(level="INFO", json_format=True)
        async with LogContext(stage="fetch"):
            get_logger("cadence.test").info("async_inside")
        assert _json_lines(capsys.readouterr().out)[-1]["stage"] == "fetch"

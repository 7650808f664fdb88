"""Tests for structlog configuration and logging context helpers."""

from __future__ import annotations

import json

import structlog

from chainspine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


def _last_json_line(text: str) -> dict:
    lines = [line for line in text.splitlines() if line.strip()]
    return json.loads(lines[-1])


class TestConfigureLogging:
    def test_json_output(self, capsys):
        configure_logging(level="INFO", json_format=True, service="chain-test")

        get_logger("chainspine.test").info("chain.start", step_count=3)

        record = _last_json_line(capsys.readouterr().err)
        assert record["event"] == "chain.start"
        assert record["step_count"] == 3
        assert record["log.level"] == "info"
        assert record["service.name"] == "chain-test"
        assert record["logger_name"] == "chainspine.test"
        assert "@timestamp" in record

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_format=True)

        logger = get_logger("chainspine.test")
        logger.info("hidden")
        logger.warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_console_output(self, capsys):
        configure_logging(level="DEBUG", json_format=False)

        get_logger().debug("chain.step.start", step_index=0)

        assert "chain.step.start" in capsys.readouterr().err

    def test_without_timestamp(self, capsys):
        configure_logging(json_format=True, add_timestamp=False)

        get_logger().info("evt")

        assert "@timestamp" not in _last_json_line(capsys.readouterr().err)


class TestLogContext:
    def test_scoped_binding(self, capsys):
        configure_logging(json_format=True)
        logger = get_logger("chainspine.test")

        with LogContext(chain_id="abc"):
            logger.info("inside")
        logger.info("outside")

        lines = [json.loads(line) for line in capsys.readouterr().err.splitlines() if line.strip()]
        assert lines[0]["chain_id"] == "abc"
        assert "chain_id" not in lines[1]

    def test_bind_unbind_clear(self):
        bind_context(chain_id="abc", step_index=1)
        assert structlog.contextvars.get_contextvars() == {"chain_id": "abc", "step_index": 1}

        unbind_context("step_index")
        assert structlog.contextvars.get_contextvars() == {"chain_id": "abc"}

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

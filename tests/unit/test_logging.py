"""Tests for harflow logging utilities."""

from __future__ import annotations

import json

from harflow.logging import DEFAULT_LEVEL, configure_logging, get_logger


class TestConfigureLogging:
    """Tests for structlog configuration."""

    def test_json_output(self, capsys) -> None:
        configure_logging(level="INFO", json_output=True)
        get_logger("harflow.test").info("har_translated", entries=2)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "har_translated"
        assert record["entries"] == 2
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_level_filtering(self, capsys) -> None:
        configure_logging(level="WARNING", json_output=True)
        log = get_logger("harflow.test")
        log.info("hidden")
        log.warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_console_output(self, capsys) -> None:
        configure_logging(level="DEBUG", json_output=False)
        get_logger("harflow.test").debug("entry_materialized", node="request_1")
        assert "entry_materialized" in capsys.readouterr().err

    def test_unknown_level_falls_back_to_info(self, capsys) -> None:
        configure_logging(level="chatty", json_output=True)
        log = get_logger("harflow.test")
        log.debug("hidden")
        log.info("shown")
        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_exception_logged_as_error_with_traceback(self, capsys) -> None:
        configure_logging(level="INFO", json_output=True)
        try:
            raise ValueError("bad workspace id")
        except ValueError:
            get_logger("harflow.test").exception("translation_failed")

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["level"] == "error"
        assert "ValueError: bad workspace id" in record["exception"]

    def test_default_level_hides_info(self, capsys) -> None:
        configure_logging(json_output=True)
        assert DEFAULT_LEVEL == "WARNING"
        get_logger("harflow.test").info("har_translated")
        assert capsys.readouterr().err == ""

    def test_get_logger_returns_structlog_proxy(self) -> None:
        assert hasattr(get_logger(__name__), "info")

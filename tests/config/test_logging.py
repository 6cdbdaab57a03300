"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
import structlog

from pricegraph.config.logging import HANDLER_NAME, bind_document, configure_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    pg = logging.getLogger("pricegraph")
    pg_level = pg.level
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
    root.handlers = original_handlers
    root.setLevel(original_level)
    pg.setLevel(pg_level)


class TestConfigureLogging:
    def test_verbose_enables_debug(self) -> None:
        configure_logging(verbose=True)
        assert logging.getLogger("pricegraph").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_non_verbose_sets_warning(self) -> None:
        configure_logging(verbose=False)
        assert logging.getLogger("pricegraph").level == logging.WARNING

    def test_reconfigure_replaces_own_handler(self) -> None:
        other = logging.NullHandler()
        logging.getLogger().addHandler(other)
        configure_logging()
        configure_logging(log_json=True)
        handlers = logging.getLogger().handlers
        assert [h.get_name() for h in handlers].count(HANDLER_NAME) == 1
        assert other in handlers

    def test_json_mode_output(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        log = structlog.get_logger("pricegraph.test")
        log.warning("json test", answer=42)
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "json test"
        assert parsed["answer"] == 42
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "pricegraph.test"
        assert "timestamp" in parsed

    def test_stdlib_records_are_structured(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("pricegraph.domain.normalise").debug("Skipping %s", "thing")
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "Skipping thing"
        assert parsed["level"] == "debug"
        assert parsed["logger"] == "pricegraph.domain.normalise"

    def test_bound_document_on_every_line(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        bind_document("configs/shop.json")
        logging.getLogger("pricegraph.infrastructure.builder").debug("Loaded revision")
        structlog.get_logger("pricegraph.telemetry").debug("operation.timed", op="lint")
        lines = [json.loads(line) for line in capfd.readouterr().err.strip().splitlines()]
        assert [line["document"] for line in lines] == ["configs/shop.json", "configs/shop.json"]

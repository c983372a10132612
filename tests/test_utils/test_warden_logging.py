"""Tests for warden.utils.logging: JSONL file output and context binding."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from warden.utils.logging import (
    LOG_FILE_NAME,
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
    unbind_context,
)


@pytest.fixture()
def log_dir(tmp_path: Path) -> Iterator[Path]:
    yield tmp_path / "logs"
    clear_context()
    for handler in logging.root.handlers:
        handler.close()
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)
    structlog.reset_defaults()


def _lines(log_dir: Path) -> list[dict]:
    text = (log_dir / LOG_FILE_NAME).read_text(encoding="utf-8")
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class TestSetupLogging:
    def test_file_gets_json_lines_with_bound_context(self, log_dir: Path) -> None:
        setup_logging(level="WARNING", log_dir=log_dir, console=False)
        log = get_logger("warden.test")

        bind_context(agent="heal", action="scan_code")
        log.debug("scan_started", checks=3)
        unbind_context("action")
        log.info("scan_complete", issues=2)

        first, second = _lines(log_dir)
        assert first["event"] == "scan_started"
        assert first["level"] == "debug"
        assert first["agent"] == "heal"
        assert first["action"] == "scan_code"
        assert first["checks"] == 3
        assert second["event"] == "scan_complete"
        assert "action" not in second

    def test_stdlib_records_are_rendered_too(self, log_dir: Path) -> None:
        setup_logging(log_dir=log_dir, console=False)
        logging.getLogger("thirdparty").warning("plain message")

        (line,) = _lines(log_dir)
        assert line["event"] == "plain message"
        assert line["level"] == "warning"

    def test_no_handlers_without_console_or_dir(self, log_dir: Path) -> None:
        setup_logging(console=False)
        assert logging.root.handlers == []
        assert not log_dir.exists()

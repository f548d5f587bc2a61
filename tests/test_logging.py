"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Generator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from tessera.logging import LOG_FILENAME, setup_logging, teardown_logging


@pytest.fixture(autouse=True)
def _reset_logging() -> Generator[None, None, None]:
    yield
    teardown_logging()


def _records(log_dir: Path) -> list[dict[str, object]]:
    for handler in logging.getLogger("tessera").handlers:
        handler.flush()
    return [json.loads(line) for line in (log_dir / LOG_FILENAME).read_text().splitlines() if line]


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("test_message", extra={"tool": "test", "args_data": {"key": "val"}})
        record = _records(tmp_path)[-1]
        assert record["msg"] == "test_message"
        assert record["level"] == "INFO"
        assert record["tool"] == "test"
        assert record["args"] == {"key": "val"}

    def test_duration_and_error_fields(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.warning("tool_error", extra={"tool": "get_item_detail", "duration_ms": 4.5, "error": "boom"})
        record = _records(tmp_path)[-1]
        assert record["duration_ms"] == 4.5
        assert record["error"] == "boom"

    def test_exception_is_recorded(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise RuntimeError("kaput")
        except RuntimeError:
            logger.error("failed", exc_info=True)
        assert _records(tmp_path)[-1]["exception"] == "kaput"

    def test_child_loggers_propagate(self, tmp_path: Path) -> None:
        setup_logging(tmp_path)
        logging.getLogger("tessera.file_index").info("from child")
        record = _records(tmp_path)[-1]
        assert record["logger"] == "tessera.file_index"

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        assert len([h for h in logger1.handlers if isinstance(h, RotatingFileHandler)]) == 1

    def test_new_directory_swaps_handler(self, tmp_path: Path) -> None:
        first = tmp_path / "a"
        second = tmp_path / "b"
        first.mkdir()
        second.mkdir()
        setup_logging(first)
        logger = setup_logging(second)
        handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(handlers) == 1
        assert handlers[0].baseFilename == os.path.abspath(str(second / LOG_FILENAME))

    def test_no_duplicate_handlers_under_concurrency(self, tmp_path: Path) -> None:
        barrier = threading.Barrier(4)
        results: list[logging.Logger] = []

        def call_setup() -> None:
            barrier.wait()
            results.append(setup_logging(tmp_path))

        threads = [threading.Thread(target=call_setup) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 4
        logger = logging.getLogger("tessera")
        assert len([h for h in logger.handlers if isinstance(h, RotatingFileHandler)]) == 1

    def test_teardown_removes_handler(self, tmp_path: Path) -> None:
        setup_logging(tmp_path)
        teardown_logging()
        assert not [h for h in logging.getLogger("tessera").handlers if isinstance(h, RotatingFileHandler)]

"""Tests for logging setup and timestamp helpers."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from waste_planner.config import LoggingConfig
from waste_planner.utils.logging import _JsonFormatter, configure_logging
from waste_planner.utils.time_utils import from_db_timestamp, to_db_timestamp


def test_json_formatter_copies_extra_fields():
    record = logging.LogRecord(
        "waste_planner.distances.cache", logging.WARNING, __file__, 1,
        "batch failed for %s", ("p-1",), None,
    )
    record.project_id = "p-1"
    payload = json.loads(_JsonFormatter().format(record))
    assert payload["level"] == "WARNING"
    assert payload["msg"] == "batch failed for p-1"
    assert payload["project_id"] == "p-1"


def test_configure_logging_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "app.log"
    configure_logging(LoggingConfig(level="info", log_file=str(log_file)))
    try:
        logging.getLogger("waste_planner.test").info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.getLogger().handlers.clear()


def test_timestamps_sort_chronologically():
    early = to_db_timestamp(datetime(2026, 1, 2, 3, 4, 5, 6, tzinfo=timezone.utc))
    late = to_db_timestamp(datetime(2026, 1, 2, 3, 4, 5, 7, tzinfo=timezone.utc))
    assert early < late
    assert early == "2026-01-02T03:04:05.000006Z"


def test_from_db_timestamp_accepts_sqlite_format():
    assert from_db_timestamp("2026-01-02T03:04:05Z") == datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert from_db_timestamp(None) is None
    assert from_db_timestamp(to_db_timestamp(datetime(2026, 5, 1))).year == 2026

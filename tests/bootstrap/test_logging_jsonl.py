from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler

from catalog_mirror.bootstrap.logging import (
    CRASH_LOG_NAME,
    ERROR_LOG_NAME,
    MAIN_LOG_NAME,
    LevelOnlyFilter,
    configure_logging,
    log_operational_error,
    write_crash_log,
)
from catalog_mirror.core.observability import OperationContext

MIN_FIELDS = {"timestamp", "level", "logger", "module", "function", "message", "correlation_id"}


def _events(path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_logging_writes_jsonl_with_minimum_fields(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.jsonl")

    logger.info("first event")
    logger.info("second event", extra={"correlation_id": "cid-001", "extra": {"k": "v"}})

    events = _events(tmp_path / MAIN_LOG_NAME)
    assert events
    for event in events:
        assert MIN_FIELDS.issubset(event.keys())
    assert events[-1]["correlation_id"] == "cid-001"
    assert events[-1]["extra"] == {"k": "v"}


def test_operation_context_fills_correlation_and_resource(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.context")

    with OperationContext("categories", correlation_id="cid-ctx"):
        logger.info("inside a sync")

    event = _events(tmp_path / MAIN_LOG_NAME)[-1]
    assert event["correlation_id"] == "cid-ctx"
    assert event["resource"] == "categories"


def test_logging_rotation_creates_backup_files(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=200, backup_count=3)
    logger = logging.getLogger("tests.rotation")

    for index in range(40):
        logger.info("event-%s %s", index, "x" * 120)

    assert sorted(tmp_path.glob(f"{MAIN_LOG_NAME}.*"))


def test_error_handler_only_accepts_error_level(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)

    handlers = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]
    error_handler = next(h for h in handlers if h.baseFilename.endswith(ERROR_LOG_NAME))

    assert error_handler.level == logging.ERROR
    assert any(isinstance(filter_, LevelOnlyFilter) for filter_ in error_handler.filters)


def test_operational_error_carries_traceback_and_extra(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.operational")
    logger.warning("not an error")

    try:
        raise RuntimeError("database is locked")
    except RuntimeError as exc:
        log_operational_error(logger, "Catalog sync failed", exc=exc, extra={"resource": "tags", "status": "failed"})

    events = _events(tmp_path / ERROR_LOG_NAME)
    assert len(events) == 1
    assert events[0]["level"] == "ERROR"
    assert events[0]["resource"] == "tags"
    assert events[0]["extra"] == {"status": "failed"}
    assert "RuntimeError: database is locked" in events[0]["exc_info"]


def test_crash_log_receives_critical_only(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)

    try:
        raise ValueError("unrecoverable")
    except ValueError as exc:
        crash_path = write_crash_log(type(exc), exc, exc.__traceback__, tmp_path)

    assert crash_path == tmp_path / CRASH_LOG_NAME
    crash_event = _events(crash_path)[-1]
    assert crash_event["level"] == "CRITICAL"
    assert "ValueError: unrecoverable" in crash_event["exc_info"]
    assert "python" in crash_event["extra"]
    assert (tmp_path / ERROR_LOG_NAME).read_text(encoding="utf-8") == ""


def test_consumer_secret_never_reaches_log_files(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.secrets")
    url = "https://shop.example.com/wp-json/wc/v3/products?consumer_key=ck_live123&consumer_secret=cs_live456"

    logger.warning("Sync job failed: %s", ConnectionError(f"Max retries exceeded with url: {url}"))
    try:
        raise RuntimeError(f"boom {url}")
    except RuntimeError as exc:
        log_operational_error(logger, "Catalog sync failed", exc=exc, extra={"error": url})

    written = (tmp_path / MAIN_LOG_NAME).read_text(encoding="utf-8")
    assert "ck_live123" not in written
    assert "cs_live456" not in written
    assert "consumer_secret=<REDACTED>" in written


def test_client_debug_correlation_id_is_lifted(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.lifted")

    logger.warning("Fetched page", extra={"extra": {"correlation_id": "cid-9", "items": 3}})

    event = _events(tmp_path / MAIN_LOG_NAME)[-1]
    assert event["correlation_id"] == "cid-9"
    assert event["extra"] == {"items": 3}

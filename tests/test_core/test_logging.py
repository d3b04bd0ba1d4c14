"""Tests for logging configuration."""

import logging
from collections.abc import Generator

import pytest
import structlog
from structlog.testing import LogCapture

from timetiles.core.logging import configure_logging, get_job_logger, get_logger


@pytest.fixture
def log_output() -> LogCapture:
    """Fixture to capture log output."""
    return LogCapture()


@pytest.fixture
def capture_logging(log_output: LogCapture) -> Generator[LogCapture, None, None]:
    """Route structlog events into ``log_output`` for one test."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            log_output,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    yield log_output
    configure_logging(testing=True)


def test_configure_logging_uses_json_renderer() -> None:
    configure_logging()
    try:
        processors = structlog.get_config()["processors"]
        assert any(p.__class__.__name__ == "JSONRenderer" for p in processors)
    finally:
        configure_logging(testing=True)


def test_configure_logging_for_tests_uses_key_value_renderer() -> None:
    configure_logging(testing=True)
    processors = structlog.get_config()["processors"]
    assert any(p.__class__.__name__ == "KeyValueRenderer" for p in processors)


def test_configure_logging_sets_package_logger_level() -> None:
    configure_logging(testing=True, level="WARNING")
    try:
        package_logger = logging.getLogger("timetiles")
        assert package_logger.level == logging.WARNING
        assert package_logger.propagate is False
        assert len(package_logger.handlers) == 1
    finally:
        configure_logging(testing=True)


def test_configure_logging_unknown_level_falls_back_to_info() -> None:
    configure_logging(testing=True, level="chatty")
    assert logging.getLogger("timetiles").level == logging.INFO


def test_get_logger() -> None:
    logger = get_logger("timetiles.test")
    assert callable(getattr(logger, "bind", None))


def test_get_job_logger_binds_job_id(capture_logging: LogCapture) -> None:
    logger = get_job_logger("job-123")
    logger.info("batch_processed", rows=10)

    assert len(capture_logging.entries) == 1
    entry = capture_logging.entries[0]
    assert entry["event"] == "batch_processed"
    assert entry["rows"] == 10
    assert entry["import_job_id"] == "job-123"
    assert entry["log_level"] == "info"


def test_get_job_logger_without_job_id(capture_logging: LogCapture) -> None:
    get_job_logger().warning("no_job")

    assert len(capture_logging.entries) == 1
    assert "import_job_id" not in capture_logging.entries[0]


def test_json_logs_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    from timetiles.core.config import settings

    monkeypatch.setattr(settings, "JSON_LOGS", False)
    configure_logging()
    try:
        processors = structlog.get_config()["processors"]
        assert not any(p.__class__.__name__ == "JSONRenderer" for p in processors)
    finally:
        configure_logging(testing=True)


def test_level_defaults_to_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    from timetiles.core.config import settings

    monkeypatch.setattr(settings, "LOG_LEVEL", "ERROR")
    configure_logging(testing=True)
    try:
        assert logging.getLogger("timetiles").level == logging.ERROR
    finally:
        monkeypatch.undo()
        configure_logging(testing=True)

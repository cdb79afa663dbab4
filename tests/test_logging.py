import json
import logging

import pytest
import structlog
from structlog.testing import capture_logs

import embedpy.logging as embedpy_logging
from embedpy.errors import CorruptTrailerError, log_error
from embedpy.logging import (
    CompactJSONRenderer,
    configure_logging,
    get_logger,
    level_filter,
)


def test_compact_json_renderer():
    """Test single-line JSON rendering"""
    output = CompactJSONRenderer()(None, "info", {
        "timestamp": "2024-01-01T00:00:00+00:00",
        "level": "info",
        "event": "sealed",
        "lineno": 12,
        "path": "/tmp/host-sealed",
    })

    data = json.loads(output)
    assert "\n" not in output
    assert data["ts"] == "2024-01-01T00:00:00+00:00"
    assert data["lvl"] == "info"
    assert data["msg"] == "sealed"
    assert data["lineno"] == 12
    assert data["data"] == {"path": "/tmp/host-sealed"}


def test_compact_json_renderer_without_data():
    output = CompactJSONRenderer()(None, "debug", {"event": "x", "level": "debug"})
    assert "data" not in json.loads(output)


def test_compact_json_renderer_non_serializable():
    """Paths and other objects are rendered as strings"""
    from pathlib import Path

    output = CompactJSONRenderer()(None, "info", {"event": "x", "root": Path("/rt")})
    assert json.loads(output)["data"] == {"root": "/rt"}


@pytest.mark.parametrize("method,dropped", [
    ("debug", True),
    ("info", False),
    ("error", False),
])
def test_level_filter(monkeypatch, method, dropped):
    """Test events below the stderr level are dropped"""
    monkeypatch.setattr(embedpy_logging, "STDERR_LOG_LEVEL", "INFO")
    logger = logging.getLogger("embedpy.test")
    if dropped:
        with pytest.raises(structlog.DropEvent):
            level_filter(logger, method, {"event": "x"})
    else:
        assert level_filter(logger, method, {"event": "x"}) == {"event": "x"}


def test_level_filter_ignored_loggers(monkeypatch):
    monkeypatch.setattr(embedpy_logging, "STDERR_LOG_LEVEL", "DEBUG")
    with pytest.raises(structlog.DropEvent):
        level_filter(logging.getLogger("urllib3.connectionpool"), "error", {"event": "x"})


def test_configure_logging():
    """Test logging configuration"""
    configure_logging("DEBUG")
    try:
        assert embedpy_logging.STDERR_LOG_LEVEL == "DEBUG"
        assert logging.getLogger("embedpy").level == logging.DEBUG
        assert structlog.is_configured()
    finally:
        configure_logging("INFO")
    assert logging.getLogger("embedpy").level == logging.INFO


def test_get_logger():
    logger = get_logger("embedpy.test_module")
    with capture_logs() as logs:
        logger.info({"event": "hello", "value": 1})
    assert logs[0]["event"] == {"event": "hello", "value": 1}
    assert logs[0]["log_level"] == "info"


def test_log_error():
    """Test errors are logged with their code and details"""
    error = CorruptTrailerError("/tmp/x", 100, 10)
    with capture_logs() as logs:
        log_error(error, {"operation": "detect"})

    event = logs[0]["event"]
    assert logs[0]["log_level"] == "error"
    assert event["event"] == "embedpy_error"
    assert event["error_type"] == "CorruptTrailerError"
    assert event["code"] == "seal_error"
    assert event["details"]["payload_length"] == 100
    assert event["context"] == {"operation": "detect"}


@pytest.mark.parametrize("method,threshold", [
    ("exception", "ERROR"),
    ("warn", "WARNING"),
    ("msg", "INFO"),
])
def test_level_filter_method_aliases(monkeypatch, method, threshold):
    """Logger methods that are not level names keep their level"""
    monkeypatch.setattr(embedpy_logging, "STDERR_LOG_LEVEL", threshold)
    logger = logging.getLogger("embedpy.test")
    assert level_filter(logger, method, {"event": "x"}) == {"event": "x"}

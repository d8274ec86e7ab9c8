from __future__ import annotations

import json
import logging
import sys

from certify.core.logging import _ContainerFormatter, _JsonFormatter, setup_logging


def _record(
    level: int = logging.INFO,
    msg: str = "hello",
    *,
    pathname: str = "test.py",
    lineno: int = 1,
    args: tuple = (),
    exc_info=None,
) -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=level,
        pathname=pathname,
        lineno=lineno,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


# ---- setup_logging ----


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_setup_logging_defaults_to_info_for_unknown_level() -> None:
    setup_logging("nonexistent")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_quiets_sqlalchemy_at_debug() -> None:
    setup_logging("debug")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert logging.getLogger("uvicorn").level == logging.WARNING


def test_setup_logging_allows_uvicorn_at_error() -> None:
    setup_logging("error")
    assert logging.getLogger("uvicorn").level == logging.ERROR


def test_setup_logging_json_installs_json_formatter() -> None:
    setup_logging("info", json_format=True)
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, _JsonFormatter)
    setup_logging("info")


# ---- container formatter ----


def test_formatter_excludes_location_for_info() -> None:
    output = _ContainerFormatter().format(_record())
    assert "hello" in output
    assert "[test.py:" not in output


def test_formatter_includes_location_for_warning() -> None:
    output = _ContainerFormatter().format(
        _record(logging.WARNING, "rolled back", lineno=42)
    )
    assert "rolled back" in output
    assert "[test.py:42]" in output


# ---- JSON formatter ----


def test_json_formatter_produces_valid_json() -> None:
    output = _JsonFormatter().format(_record(msg="Hello %s", args=("world",)))
    parsed = json.loads(output)
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "test.logger"
    assert parsed["message"] == "Hello world"
    assert "timestamp" in parsed


def test_json_formatter_lifts_issuance_context() -> None:
    record = _record(msg="Certificate issued")
    record.request_id = "abc-123"  # type: ignore[attr-defined]
    record.user_id = "user-1"  # type: ignore[attr-defined]
    record.item_kind = "course"  # type: ignore[attr-defined]
    record.certificate_number = "MUNI2026-000001-0001-ABC-DE12F"  # type: ignore[attr-defined]
    record.outcome = "issued"  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "abc-123"
    assert parsed["user_id"] == "user-1"
    assert parsed["item_kind"] == "course"
    assert parsed["certificate_number"] == "MUNI2026-000001-0001-ABC-DE12F"
    assert parsed["outcome"] == "issued"


def test_json_formatter_ignores_unlisted_extra_fields() -> None:
    record = _record()
    record.password = "hunter2"  # type: ignore[attr-defined]
    parsed = json.loads(_JsonFormatter().format(record))
    assert "password" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("test error")
    except ValueError:
        record = _record(logging.ERROR, "Rollback failed", exc_info=sys.exc_info())

    parsed = json.loads(_JsonFormatter().format(record))
    assert "exception" in parsed
    assert "ValueError: test error" in parsed["exception"]

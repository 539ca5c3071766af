"""Tests for structured logging setup."""

from __future__ import annotations

import io
import json
import logging
import sys
from collections.abc import Iterator

import pytest

from reconcile_core.logging_config import JsonFormatter, setup_logging
from reconcile_core.models import ResourceKind


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def _record(self, **extra: object) -> logging.LogRecord:
        logger = logging.getLogger("reconcile_core.test")
        record = logger.makeRecord(
            logger.name, logging.INFO, __file__, 1, "Resource created", (), None, extra=extra
        )
        return record

    def test_core_fields(self) -> None:
        """Every line has timestamp, level, message and logger."""
        data = json.loads(JsonFormatter().format(self._record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Resource created"
        assert data["logger"] == "reconcile_core.test"
        assert data["timestamp"].endswith("Z")

    def test_extra_fields(self) -> None:
        """Structured extras are included, enums stringified."""
        data = json.loads(
            JsonFormatter().format(self._record(resource_name="data", kind=ResourceKind.DISK))
        )

        assert data["resource_name"] == "data"
        assert data["kind"] == "disk"
        assert "lineno" not in data

    def test_exception_included(self) -> None:
        """Exception tracebacks are included."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.getLogger("x").makeRecord(
                "x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )

        data = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_installs_json_handler(self, restore_root_logger: None) -> None:
        """Root logger gets a JSON handler; SDK loggers are quieted."""
        stream = io.StringIO()

        handler = setup_logging(level=logging.DEBUG, stream=stream)
        logging.getLogger("reconcile_core.test").info("hello", extra={"kind": "disk"})

        assert handler in logging.getLogger().handlers
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("azure").level == logging.WARNING
        assert logging.getLogger("google").level == logging.WARNING

        line = stream.getvalue().strip().splitlines()[-1]
        assert json.loads(line)["kind"] == "disk"

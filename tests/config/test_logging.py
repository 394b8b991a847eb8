"""Tests for structlog configuration and secret redaction."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
import structlog

from pimsctl.config.logging import configure_logging, redact_secrets


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    pims = logging.getLogger("pimsctl")
    pims_level = pims.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    pims.setLevel(pims_level)


class TestConfigureLogging:
    def test_verbose_enables_debug(self) -> None:
        configure_logging(verbose=True, log_json=False)
        assert logging.getLogger("pimsctl").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_non_verbose_sets_warning(self) -> None:
        configure_logging(verbose=False, log_json=False)
        assert logging.getLogger("pimsctl").level == logging.WARNING

    def test_json_mode_output(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        structlog.get_logger("pimsctl.test").warning("json test", answer=42)
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "json test"
        assert parsed["answer"] == 42
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "pimsctl.test"
        assert "timestamp" in parsed

    def test_stdlib_logger_gets_structured_fields(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("pimsctl.services.reconciler").debug(
            "Credential rotated", extra={"domains": 3}
        )
        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "Credential rotated"
        assert parsed["domains"] == 3
        assert parsed["level"] == "debug"

    def test_third_party_debug_is_suppressed(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("httpx").debug("HTTP noise")
        logging.getLogger("sqlalchemy").debug("SQL noise")
        assert capfd.readouterr().err == ""

    def test_idempotent_calls(self) -> None:
        configure_logging(verbose=True, log_json=False)
        configure_logging(verbose=True, log_json=True)
        assert len(logging.getLogger().handlers) == 1


class TestRedaction:
    def test_processor_masks_sensitive_keys(self) -> None:
        event = {"event": "x", "secret": "s1", "Authorization": "Basic abc", "domain": "a.com"}
        result = redact_secrets(None, "info", event)
        assert result["secret"] == "***"
        assert result["Authorization"] == "***"
        assert result["domain"] == "a.com"

    def test_structlog_kwargs_redacted(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        structlog.get_logger("pimsctl.test").warning("login", password="hunter2", email="a@b.c")
        err = capfd.readouterr().err
        assert "hunter2" not in err
        assert json.loads(err.strip())["password"] == "***"

    def test_stdlib_extra_redacted(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("pimsctl.test").warning("stored", extra={"secret": "s3cr3t"})
        err = capfd.readouterr().err
        assert "s3cr3t" not in err

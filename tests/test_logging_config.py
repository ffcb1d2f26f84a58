"""Tests for structured logging and settings."""

import io
import json
import logging
import sys
from decimal import Decimal

import pytest

from salestax_engine.config import EngineSettings
from salestax_engine.exceptions import TransientStoreError
from salestax_engine.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
)


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("salestax_engine.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ── Formatter ────────────────────────────────────────────────────────


def test_formatter_emits_json_with_extras():
    payload = json.loads(StructuredFormatter().format(_record(rate=Decimal("0.0725"))))
    assert payload["message"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "salestax_engine.test"
    assert payload["rate"] == "0.0725"


def test_formatter_includes_bound_context():
    with LogContext.bind(calculation_id="calc_1", business_id="biz-ca"):
        payload = json.loads(StructuredFormatter().format(_record()))
    assert payload["calculation_id"] == "calc_1"
    assert payload["business_id"] == "biz-ca"

    payload = json.loads(StructuredFormatter().format(_record()))
    assert "calculation_id" not in payload


def test_formatter_reports_engine_error_code():
    try:
        raise TransientStoreError("store down", jurisdiction_code="CA")
    except TransientStoreError:
        record = logging.LogRecord(
            "salestax_engine.test", logging.ERROR, __file__, 1, "failed", (), None
        )
        record.exc_info = sys.exc_info()
    payload = json.loads(StructuredFormatter().format(record))
    assert payload["exc_type"] == "TransientStoreError"
    assert payload["exc_code"] == "TRANSIENT_STORE_ERROR"


def test_nested_bind_restores_outer_values():
    with LogContext.bind(business_id="outer"):
        with LogContext.bind(business_id="inner"):
            assert LogContext.get_all()["business_id"] == "inner"
        assert LogContext.get_all()["business_id"] == "outer"
    assert LogContext.get_all() == {}


# ── configure_logging ────────────────────────────────────────────────


def test_configure_logging_writes_json_lines():
    stream = io.StringIO()
    configure_logging(level="DEBUG", stream=stream)
    configure_logging(level="DEBUG", stream=io.StringIO())  # idempotent

    get_logger("cache").debug("Cache MISS for %s", "tax-rate:v1:US", extra={"size": 3})
    lines = stream.getvalue().strip().splitlines()
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["logger"] == "salestax_engine.cache"
    assert payload["message"] == "Cache MISS for tax-rate:v1:US"
    assert payload["size"] == 3


# ── Settings ─────────────────────────────────────────────────────────


def test_settings_defaults():
    settings = EngineSettings()
    assert settings.cache_ttl_seconds == 300.0
    assert settings.deviation_min_samples == 10
    assert settings.default_category == "general"


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SALESTAX_CACHE_TTL_SECONDS", "120")
    monkeypatch.setenv("SALESTAX_LOG_LEVEL", "DEBUG")
    settings = EngineSettings()
    assert settings.cache_ttl_seconds == 120.0
    assert settings.log_level == "DEBUG"


def test_settings_validation(monkeypatch):
    monkeypatch.setenv("SALESTAX_CACHE_MAX_ENTRIES", "0")
    with pytest.raises(ValueError):
        EngineSettings()

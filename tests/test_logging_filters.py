"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from route_limits.core.logging import (
    JsonFormatter,
    SensitiveDataFilter,
    clear_request_id,
    redact,
    set_request_id,
)


@pytest.fixture
def log_stream():
    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    yield logger, stream

    logger.handlers.clear()


def test_sensitive_filter_redacts_secrets(log_stream):
    logger, stream = log_stream

    logger.info(
        "rate_limit.configured",
        extra={
            "api_key": "sk-secret-123",
            "db_url": "postgresql://user:hunter2@db/app",
            "key_value": "203.0.113.7",
            "driver": "db",
        },
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "hunter2" not in output
    assert "203.0.113.7" not in output
    assert "[REDACTED]" in output
    assert json.loads(output)["driver"] == "db"


def test_rate_limit_fields_pass_through(log_stream):
    logger, stream = log_stream

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_type": "ip",
            "key_hash": "0123456789abcdef",
            "route": "_items__item_id_",
            "limit": 2,
            "retry_after_s": 30,
        },
    )

    record = json.loads(stream.getvalue())
    assert record["message"] == "rate_limit.exceeded"
    assert record["level"] == "warning"
    assert record["key_hash"] == "0123456789abcdef"
    assert record["route"] == "_items__item_id_"
    assert record["retry_after_s"] == 30
    assert "[REDACTED]" not in stream.getvalue()


def test_nested_sensitive_fields_are_redacted(log_stream):
    logger, stream = log_stream

    logger.info(
        "nested_event",
        extra={"headers": {"x-api-key": "secret-key", "user-agent": "pytest"}},
    )

    record = json.loads(stream.getvalue())
    assert record["headers"] == {"x-api-key": "[REDACTED]", "user-agent": "pytest"}


def test_request_id_from_context_is_included(log_stream):
    logger, stream = log_stream

    set_request_id("req-123")
    try:
        logger.info("with_request")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-123"


def test_redact_handles_sequences():
    assert redact([{"token": "t"}, ("a", {"password": "p"})]) == [
        {"token": "[REDACTED]"},
        ("a", {"password": "[REDACTED]"}),
    ]

"""
Tests for autobay/utils/logging.py - JSON formatter and correlation IDs.
"""
import json
import logging
import sys

import pytest

from autobay.utils.logging import (
    StructuredJsonFormatter,
    configure_structured_logging,
    correlation_id_ctx,
    ensure_correlation_id,
    correlation_scope,
    generate_correlation_id,
    get_correlation_id,
)


@pytest.fixture(autouse=True)
def clean_correlation_id():
    token = correlation_id_ctx.set(None)
    yield
    correlation_id_ctx.reset(token)


def _record(msg="Booked %s", args=("a-1",), **extra):
    record = logging.LogRecord("autobay.test", logging.INFO, __file__, 10, msg, args, None)
    for key, val in extra.items():
        setattr(record, key, val)
    return record


class TestCorrelationId:
    def test_generate_is_hex_uuid(self):
        cid = generate_correlation_id()
        assert len(cid) == 32
        int(cid, 16)

    def test_ensure_creates_once(self):
        assert get_correlation_id() is None

        first = ensure_correlation_id()
        second = ensure_correlation_id()

        assert first == second == get_correlation_id()

    def test_scope_binds_and_restores(self):
        correlation_id_ctx.set("outer")

        with correlation_scope() as cid:
            assert get_correlation_id() == cid != "outer"
            with correlation_scope("inner") as inner:
                assert inner == "inner"
                assert get_correlation_id() == "inner"
            assert get_correlation_id() == cid

        assert get_correlation_id() == "outer"


class TestStructuredJsonFormatter:
    def test_basic_fields(self):
        correlation_id_ctx.set("cid-123")

        entry = json.loads(StructuredJsonFormatter().format(_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "autobay.test"
        assert entry["message"] == "Booked a-1"
        assert entry["correlation_id"] == "cid-123"
        assert entry["timestamp"].endswith("Z")

    def test_known_extra_keys_included(self):
        record = _record(appointment_id="a-1", technician_id="tech-001", unrelated="skip")

        entry = json.loads(StructuredJsonFormatter().format(record))

        assert entry["appointment_id"] == "a-1"
        assert entry["technician_id"] == "tech-001"
        assert "unrelated" not in entry
        assert "service_id" not in entry

    def test_exception_included(self):
        try:
            raise ValueError("bad slot")
        except ValueError:
            record = logging.LogRecord(
                "autobay.test", logging.ERROR, __file__, 10, "failed", (), sys.exc_info()
            )

        entry = json.loads(StructuredJsonFormatter().format(record))

        assert "ValueError: bad slot" in entry["exception"]


class TestConfigureStructuredLogging:
    def test_installs_single_json_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_structured_logging("debug")

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredJsonFormatter)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

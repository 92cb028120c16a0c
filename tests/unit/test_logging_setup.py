"""
Unit tests for logging configuration.
"""

import json
import logging

import pytest

from customer_sync.utils.correlation import clear_correlation_id, set_correlation_id
from customer_sync.utils.logging_setup import StructuredJSONFormatter, configure_logging


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)
    clear_correlation_id()


def make_record(**extra):
    record = logging.LogRecord("customer_sync.test", logging.WARNING, __file__, 10, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredJSONFormatter:

    def test_basic_fields(self):
        payload = json.loads(StructuredJSONFormatter().format(make_record(correlation_id="req-1")))

        assert payload["message"] == "hello world"
        assert payload["level"] == "WARNING"
        assert payload["correlation_id"] == "req-1"

    def test_extra_fields_copied(self):
        payload = json.loads(StructuredJSONFormatter().format(make_record(store="core1.customers", orphans=3)))

        assert payload["store"] == "core1.customers"
        assert payload["orphans"] == 3
        assert payload["correlation_id"] == "N/A"


class TestConfigureLogging:

    def test_replaces_own_handler(self, restore_root):
        configure_logging()
        configure_logging(json_logging=True, level=logging.DEBUG)

        ours = [h for h in restore_root.handlers if getattr(h, "_customer_sync", False)]
        assert len(ours) == 1
        assert isinstance(ours[0].formatter, StructuredJSONFormatter)
        assert restore_root.level == logging.DEBUG

    def test_handler_stamps_correlation_id(self, restore_root):
        configure_logging(json_logging=True)
        set_correlation_id("req-42")
        handler = [h for h in restore_root.handlers if getattr(h, "_customer_sync", False)][0]
        record = make_record()

        handler.filter(record)

        assert json.loads(handler.format(record))["correlation_id"] == "req-42"

"""Tests for utils/logging_utils.py: JSON-lines and console formatting."""

import json
import logging
import sys

from utils.logging_utils import ConsoleFormatter, JsonLineFormatter


def _record(msg="hello %s", args=("world",), **extra):
    record = logging.LogRecord("core.router", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_line_fields():
    payload = json.loads(JsonLineFormatter().format(_record(scope="http:1-1", meta={"path": "/dockerapi"})))
    assert payload["level"] == "info"
    assert payload["scope"] == "http:1-1"
    assert payload["msg"] == "hello world"
    assert payload["meta"] == {"path": "/dockerapi"}
    assert payload["ts"].endswith("+00:00")
    assert "exc" not in payload


def test_json_line_defaults_scope_to_logger_name():
    payload = json.loads(JsonLineFormatter().format(_record()))
    assert payload["scope"] == "core.router"
    assert "meta" not in payload


def test_json_line_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    payload = json.loads(JsonLineFormatter().format(record))
    assert "RuntimeError: boom" in payload["exc"]


def test_unserializable_meta_is_stringified():
    payload = json.loads(JsonLineFormatter().format(_record(meta={"obj": object()})))
    assert payload["meta"]["obj"].startswith("<object object")


def test_console_line():
    line = ConsoleFormatter().format(_record(scope="tailscale-sync", meta={"added": ["10.0.0.5"]}))
    assert "[INFO] [tailscale-sync] hello world" in line
    assert line.endswith('{"added": ["10.0.0.5"]}')

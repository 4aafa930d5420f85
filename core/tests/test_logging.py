import json
import logging
import sys
from core.utils.logging import JSONFormatter


def make_record(msg, *args, exc_info=None, **extra):
    record = logging.LogRecord("audit", logging.INFO, __file__, 10, msg, args, exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_message_and_extras():
    record = make_record("audit:task_create user=%s", 7, user=7, project=3, unrelated="x")
    data = json.loads(JSONFormatter().format(record))
    assert data["level"] == "INFO"
    assert data["logger"] == "audit"
    assert data["msg"] == "audit:task_create user=7"
    assert data["user"] == 7
    assert data["project"] == 3
    assert "unrelated" not in data
    assert data["src"].endswith(":10")


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = make_record("failed", exc_info=sys.exc_info())
    data = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: boom" in data["exc"]

import json
import logging
import sys

from clubhub.logging_config import JsonLineFormatter


def make_record(msg, *args, exc_info=None):
    return logging.LogRecord("clubhub.cascade", logging.WARNING, __file__, 1, msg, args, exc_info)


def test_json_formatter_emits_one_json_object():
    line = JsonLineFormatter().format(make_record("revoked %s grant(s) for %r", 2, "o'brien"))

    payload = json.loads(line)
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "clubhub.cascade"
    assert payload["msg"] == "revoked 2 grant(s) for \"o'brien\""
    assert "exc" not in payload


def test_json_formatter_includes_traceback():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = make_record("failed", exc_info=sys.exc_info())

    payload = json.loads(JsonLineFormatter().format(record))
    assert "RuntimeError: boom" in payload["exc"]

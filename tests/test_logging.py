import json
import logging

from rentguard.core.context import clear_context, set_policy_id, set_request_id
from rentguard.core.logging import (
    JsonFormatter,
    RequestContextFilter,
    TokenRedactionFilter,
    build_logging_config,
    redact_tenant_tokens,
)


def _record(msg, *args):
    return logging.LogRecord("uvicorn.access", logging.INFO, __file__, 1, msg, args, None)


def test_tenant_tokens_are_redacted_from_paths():
    line = '127.0.0.1 - "GET /api/v1/tenant/Zx9_abcDEF-12345/step/2 HTTP/1.1" 200'
    assert "Zx9_abcDEF-12345" not in redact_tenant_tokens(line)
    assert "/tenant/<token>/step/2" in redact_tenant_tokens(line)


def test_redaction_filter_rewrites_args():
    record = _record('%s "%s %s"', "127.0.0.1", "PUT", "/api/v1/tenant/secrettoken123/step/1")
    TokenRedactionFilter().filter(record)
    assert "secrettoken123" not in record.getMessage()


def test_json_formatter_carries_request_context():
    set_request_id("req-7")
    set_policy_id("pol-1")
    try:
        record = _record("hello %s", "world")
        RequestContextFilter().filter(record)
        payload = json.loads(JsonFormatter("audit").format(record))
    finally:
        clear_context()

    assert payload["message"] == "hello world"
    assert payload["stream"] == "audit"
    assert payload["request_id"] == "req-7"
    assert payload["policy_id"] == "pol-1"


def test_uvicorn_loggers_share_app_handler():
    config = build_logging_config("INFO")
    assert config["loggers"]["uvicorn.access"]["handlers"] == ["app"]
    assert config["loggers"]["rentguard.audit"]["handlers"] == ["audit"]
    assert "redact_tokens" in config["handlers"]["app"]["filters"]

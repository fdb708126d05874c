import json
import logging
import logging.config
import re
from datetime import datetime, timezone
from typing import Any, Optional

from rentguard.core.context import get_policy_id, get_request_id
from rentguard.core.settings import settings

AUDIT_LOGGER_NAME = "rentguard.audit"

# Tenant access tokens travel in the URL path and must not reach log sinks.
_TENANT_PATH = re.compile(r"(/tenant/)[A-Za-z0-9_\-]{8,}")


def redact_tenant_tokens(text: str) -> str:
    return _TENANT_PATH.sub(r"\1<token>", text)


class RequestContextFilter(logging.Filter):
    """Stamp the current request and policy on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.policy_id = get_policy_id()
        return True


class TokenRedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact_tenant_tokens(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        if isinstance(record.msg, str):
            record.msg = redact_tenant_tokens(record.msg)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, tagged with the stream it belongs to."""

    def __init__(self, stream_label: str = "app") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "stream": self.stream_label,
            "request_id": getattr(record, "request_id", "-"),
            "policy_id": getattr(record, "policy_id", "-"),
            "message": record.getMessage(),
        }
        activity = getattr(record, "activity", None)
        if activity:
            payload["activity"] = activity
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _stdout_handler(formatter: str, level: str) -> dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["request_context", "redact_tokens"],
        "stream": "ext://sys.stdout",
    }


def build_logging_config(level: str) -> dict[str, Any]:
    def route(handler: str) -> dict[str, Any]:
        return {"handlers": [handler], "level": level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {"()": RequestContextFilter},
            "redact_tokens": {"()": TokenRedactionFilter},
        },
        "formatters": {
            "app_json": {"()": JsonFormatter, "stream_label": "app"},
            "audit_json": {"()": JsonFormatter, "stream_label": "audit"},
        },
        "handlers": {
            "app": _stdout_handler("app_json", level),
            "audit": _stdout_handler("audit_json", level),
        },
        "loggers": {
            "": route("app"),
            AUDIT_LOGGER_NAME: route("audit"),
            "uvicorn": route("app"),
            "uvicorn.error": route("app"),
            "uvicorn.access": route("app"),
        },
    }


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    logging.config.dictConfig(build_logging_config(log_level))
    logging.getLogger(__name__).info("Logging configured for environment=%s", settings.environment)


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from rentguard.services.errors import IncompletenessError, PolicyServiceError

logger = logging.getLogger(__name__)


def _default_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "unprocessable_entity",
        429: "rate_limited",
    }
    return mapping.get(status_code, "http_error")


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _normalize_details(details: Any) -> dict:
    if details is None:
        return {}
    if isinstance(details, dict):
        return details
    if isinstance(details, list):
        return {"issues": details}
    return {"detail": str(details)}


def _build_response(
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
    *,
    missing: list[str] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "details": _normalize_details(details),
    }
    if missing is not None:
        payload["missing"] = missing
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload), headers=headers)


def _format_issue(error: dict) -> dict[str, str]:
    loc = [str(part) for part in error.get("loc") or [] if part not in {"body", "query", "path", "form"}]
    return {
        "path": ".".join(loc),
        "message": str(error.get("msg") or "Invalid value"),
        "type": str(error.get("type") or "value_error"),
    }


async def service_error_handler(request: Request, exc: PolicyServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Service failure code=%s details=%s", exc.code, exc.details, exc_info=exc)
        return _build_response(exc.status_code, exc.code, exc.message)
    missing = exc.missing if isinstance(exc, IncompletenessError) else None
    return _build_response(exc.status_code, exc.code, exc.message, exc.details, missing=missing)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _default_code(exc.status_code)
    message = _default_message(exc.status_code)
    details: Any = None
    if isinstance(exc.detail, str):
        message = exc.detail
    elif isinstance(exc.detail, dict):
        code = exc.detail.get("code") or code
        message = exc.detail.get("message") or exc.detail.get("error") or message
        details = exc.detail.get("details")
    elif exc.detail is not None:
        details = exc.detail
    return _build_response(exc.status_code, code, message, details, headers=getattr(exc, "headers", None))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    issues = [_format_issue(error) for error in exc.errors()]
    return _build_response(
        status_code=400,
        code="validation_error",
        message="Invalid request data",
        details={"issues": issues},
    )


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    details = getattr(exc, "detail", None)
    response = _build_response(
        status_code=429,
        code="rate_limited",
        message=_default_message(429),
        details=details,
    )
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _build_response(
        status_code=500,
        code="internal_server_error",
        message="Internal server error",
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(PolicyServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""统一错误出口

AppError / HTTPException / 参数校验错误 / 任何未捕获异常，最终都落到 error_handler：
先记录完整上下文，再返回统一的 JSON 信封:

    {"success": false, "error": {"message": ..., "stack"?, "details"?}, "timestamp": ..., "path": ...}

stack / details 只在诊断模式下返回。
"""

from __future__ import annotations

import json
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.common.errors import AppError
from app.common.logging import create_logger

DEFAULT_STATUS = 500
DEFAULT_MESSAGE = "Internal Server Error"
BODY_STATE_KEY = "raw_body"

logger = create_logger("errorHandler")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def request_url(scope: Any) -> str:
    """path + query"""
    path = scope.get("path", "")
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


def resolve_status(exc: Any) -> int:
    if isinstance(exc, RequestValidationError):
        return 422

    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool) and 400 <= status <= 599:
        return status
    return DEFAULT_STATUS


def resolve_message(exc: Any) -> str:
    if isinstance(exc, RequestValidationError):
        return "Validation error"

    message = getattr(exc, "message", None)
    if message is None and isinstance(exc, StarletteHTTPException):
        message = exc.detail
    if message is None and isinstance(exc, BaseException):
        message = str(exc)
    if isinstance(message, str) and message:
        return message
    return DEFAULT_MESSAGE


def error_stack(exc: Any) -> Optional[str]:
    stack = getattr(exc, "stack", None)
    if isinstance(stack, str) and stack:
        return stack
    if isinstance(exc, BaseException) and exc.__traceback__ is not None:
        return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return None


def error_details(exc: Any, status_code: int) -> Dict[str, Any]:
    details: Dict[str, Any] = {"name": type(exc).__name__, "status_code": status_code}
    if isinstance(exc, AppError):
        details["is_operational"] = exc.is_operational
        if exc.details is not None:
            details["details"] = exc.details
    elif isinstance(exc, RequestValidationError):
        details["errors"] = exc.errors()
    elif isinstance(exc, StarletteHTTPException) and exc.headers:
        details["headers"] = dict(exc.headers)
    return jsonable_encoder(details, custom_encoder={BaseException: str})


def _request_body(request: Request) -> Any:
    raw = getattr(request.state, BODY_STATE_KEY, None)
    if not raw:
        return None
    raw = bytes(raw)
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _log_error(request: Request, message: str, status_code: int, stack: Optional[str]) -> None:
    try:
        logger.error(
            "Error occurred",
            meta={
                "error": {"message": message, "stack": stack, "status_code": status_code},
                "request": {
                    "method": request.method,
                    "url": request_url(request.scope),
                    "headers": dict(request.headers),
                    "body": _request_body(request),
                    "params": dict(request.path_params),
                    "query": dict(request.query_params),
                },
            },
        )
    except Exception:  # noqa: BLE001
        pass


def build_error_response(request: Request, exc: Any, diagnostic_mode: bool) -> JSONResponse:
    status_code = resolve_status(exc)
    message = resolve_message(exc)
    stack = error_stack(exc)

    _log_error(request, message, status_code, stack)

    error: Dict[str, Any] = {"message": message}
    if diagnostic_mode:
        if stack:
            error["stack"] = stack
        try:
            error["details"] = error_details(exc, status_code)
        except Exception:  # noqa: BLE001
            error["details"] = {"name": type(exc).__name__, "status_code": status_code}

    headers = getattr(exc, "headers", None) if isinstance(exc, StarletteHTTPException) else None
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "timestamp": utc_now_iso(),
            "path": request.url.path,
        },
        headers=headers,
    )


def _diagnostic_mode(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    return bool(getattr(settings, "diagnostic_mode", False))


async def error_handler(request: Request, exc: Exception) -> JSONResponse:
    return build_error_response(request, exc, _diagnostic_mode(request))

# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.common.errors import AppError
from app.common.exception_handlers import BODY_STATE_KEY, error_handler, request_url, utc_now_iso
from app.common.logging import create_logger

TRACE_SCOPE_KEY = "friendmatch.request_trace"
_HOOK_ATTR = "__completion_hook__"

logger = create_logger("requestLogger")
error_logger = create_logger("errorHandler")


@dataclass
class RequestTrace:
    method: str
    url: str
    start_time: float
    status_code: Optional[int] = None


def install_completion_hook(send: Send, on_complete: Callable[[int], None]) -> Send:
    """包装 send：最后一个 body 消息发出前回调一次 on_complete(status_code)

    已经包装过的 send 原样返回。
    """
    if getattr(send, _HOOK_ATTR, False):
        return send

    status_code = 0
    fired = False

    async def hooked_send(message: Message) -> None:
        nonlocal status_code, fired
        if message["type"] == "http.response.start":
            status_code = message.get("status", 0)
        elif message["type"] == "http.response.body" and not message.get("more_body", False) and not fired:
            fired = True
            try:
                on_complete(status_code)
            except Exception:  # noqa: BLE001
                pass
        return await send(message)

    setattr(hooked_send, _HOOK_ATTR, True)
    return hooked_send


class RequestLoggerMiddleware:
    """记录 Incoming request / Request completed（含耗时与状态码）"""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or TRACE_SCOPE_KEY in scope:
            await self.app(scope, receive, send)
            return

        trace = RequestTrace(method=scope["method"], url=request_url(scope), start_time=time.monotonic())
        scope[TRACE_SCOPE_KEY] = trace

        headers = Request(scope).headers
        client = scope.get("client")
        logger.info(
            "Incoming request",
            meta={
                "method": trace.method,
                "url": trace.url,
                "user_agent": headers.get("user-agent"),
                "ip": client[0] if client else None,
                "timestamp": utc_now_iso(),
            },
        )

        def on_complete(status_code: int) -> None:
            trace.status_code = status_code
            duration = int((time.monotonic() - trace.start_time) * 1000)
            logger.info(
                "Request completed",
                meta={
                    "method": trace.method,
                    "url": trace.url,
                    "status_code": status_code,
                    "duration": duration,
                    "timestamp": utc_now_iso(),
                },
            )

        await self.app(scope, receive, install_completion_hook(send, on_complete))


class ErrorHandlerMiddleware:
    """兜底：任何逃出路由的异常都交给 error_handler，不再向上抛

    同时把请求体（不超过 max_body_bytes）留一份在 request.state，供错误日志使用。
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int = 10 * 1024 * 1024) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        body = bytearray()
        scope.setdefault("state", {})[BODY_STATE_KEY] = body
        started = False
        finished = False

        async def tee_receive() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                room = self.max_body_bytes - len(body)
                if room > 0:
                    body.extend(message.get("body", b"")[:room])
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal started, finished
            if message["type"] == "http.response.start":
                started = True
            elif message["type"] == "http.response.body" and not message.get("more_body", False):
                finished = True
            await send(message)

        try:
            self._check_length(scope)
            await self.app(scope, tee_receive, tracking_send)
        except Exception as exc:  # noqa: BLE001
            if started:
                error_logger.error(
                    "Error after response started",
                    meta={"method": scope.get("method"), "url": request_url(scope)},
                    exc_info=exc,
                )
                if not finished:
                    # 补发结束消息，让响应正常收尾
                    try:
                        await tracking_send({"type": "http.response.body", "body": b"", "more_body": False})
                    except Exception:  # noqa: BLE001
                        pass
                return
            request = Request(scope, tee_receive)
            response = await error_handler(request, exc)
            await response(scope, tee_receive, tracking_send)

    def _check_length(self, scope: Scope) -> None:
        length = Request(scope).headers.get("content-length")
        if length and length.isdigit() and int(length) > self.max_body_bytes:
            raise AppError("Request entity too large", 413)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "SAMEORIGIN",
        "Referrer-Policy": "no-referrer",
        "X-DNS-Prefetch-Control": "off",
        "Cross-Origin-Opener-Policy": "same-origin",
    }

    def __init__(self, app: ASGIApp, hsts: bool = False) -> None:
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response: Response = await call_next(request)
        for name, value in self.HEADERS.items():
            response.headers.setdefault(name, value)
        if self.hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=15552000; includeSubDomains")
        return response

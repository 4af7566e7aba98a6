# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import uvicorn
from fastapi import APIRouter, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import health as health_api
from app.api.not_found import register_not_found
from app.common.diagnostics import DiagnosticSinks
from app.common.errors import AppError
from app.common.exception_handlers import error_handler
from app.common.logging import setup_logging
from app.common.middlewares import ErrorHandlerMiddleware, RequestLoggerMiddleware, SecurityHeadersMiddleware
from app.infra.applog import applog
from app.infra.config import Settings, get_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    logging_service = setup_logging(settings)
    diagnostics = DiagnosticSinks(settings).install()
    diagnostics.install_loop(asyncio.get_running_loop())
    app.state.logging = logging_service
    app.state.diagnostics = diagnostics

    applog.info(f"Starting friendmatch-api in {settings.ENV} mode", meta={"port": settings.PORT})
    try:
        yield
    finally:
        applog.info("Shutting down friendmatch-api")
        diagnostics.uninstall()
        logging_service.stop()


def create_app(settings: Optional[Settings] = None, routers: Sequence[APIRouter] = ()) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="friendmatch-api",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ---------- middlewares / handlers ----------
    # add_middleware 后加的在外层: CORS -> 安全头 -> 请求日志 -> 兜底错误处理 -> 路由

    app.add_middleware(ErrorHandlerMiddleware, max_body_bytes=settings.MAX_BODY_BYTES)
    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials="*" not in settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, error_handler)
    app.add_exception_handler(StarletteHTTPException, error_handler)
    app.add_exception_handler(RequestValidationError, error_handler)

    app.include_router(health_api.router)
    for router in routers:
        app.include_router(router)

    # 404 兜底，放在所有路由之后
    register_not_found(app)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT, access_log=False)


if __name__ == "__main__":
    run()

# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

from fastapi import FastAPI, Request

from app.common.errors import NotFoundError

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


async def route_not_found(request: Request) -> None:
    """所有路由都没匹配上时走到这里，直接转成 404 交给统一错误出口"""
    original_url = request.url.path
    if request.url.query:
        original_url = f"{original_url}?{request.url.query}"
    raise NotFoundError(f"Route {request.method} {original_url} not found")


def register_not_found(app: FastAPI) -> None:
    """必须在所有业务路由之后调用"""
    app.add_api_route(
        "/{full_path:path}",
        route_not_found,
        methods=ALL_METHODS,
        include_in_schema=False,
    )

# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

import os

# app.main 在 import 时就会创建 app，环境变量需要先于 import 设置
os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_TO_FILE", "false")

import logging

import pytest
from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from fastapi.testclient import TestClient

from app.common.errors import AppError, create_error
from app.infra.config import Settings
from app.main import create_app


class WeirdError(Exception):
    status_code = "teapot"


test_router = APIRouter(prefix="/test")


@test_router.get("/boom")
def boom():
    raise RuntimeError("boom")


@test_router.get("/forbidden")
def forbidden():
    raise create_error("forbidden", 403)


@test_router.get("/weird")
def weird():
    raise WeirdError()


@test_router.get("/ok-status-error")
def ok_status_error():
    raise AppError("looks fine", status_code=200)


@test_router.get("/items/{item_id}")
def get_item(item_id: int):
    return {"item_id": item_id}


@test_router.post("/orders/{order_id}")
def create_order(order_id: str, payload: dict):
    raise create_error("order rejected", 409)


@test_router.post("/echo")
def echo(payload: dict):
    return payload


@test_router.get("/stream")
def broken_stream():
    def chunks():
        yield b"first"
        raise RuntimeError("stream broke")

    return StreamingResponse(chunks(), media_type="text/plain")


def make_settings(**overrides) -> Settings:
    values = {"ENV": "test", "LOG_TO_FILE": False, "DIAGNOSTIC_MODE": False}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def make_client():
    def _make(**overrides) -> TestClient:
        app = create_app(make_settings(**overrides), routers=[test_router])
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def diag_client(make_client):
    return make_client(DIAGNOSTIC_MODE=True)


@pytest.fixture
def records(caplog):
    """按 message 取 friendmatch.* 的日志记录"""
    caplog.set_level(logging.DEBUG)

    def _records(message=None):
        return [
            r
            for r in caplog.records
            if r.name.startswith("friendmatch.") and (message is None or r.getMessage() == message)
        ]

    return _records

# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from app.api.deps import get_app_settings
from app.common.exception_handlers import utc_now_iso
from app.infra.config import Settings

_STARTED_AT = time.monotonic()

router = APIRouter(tags=["health"])


def uptime_seconds() -> float:
    return time.monotonic() - _STARTED_AT


@router.api_route("/health", methods=["GET", "HEAD"])
def health_check(settings: Settings = Depends(get_app_settings)) -> dict:
    return {
        "status": "ok",
        "environment": settings.ENV,
        "timestamp": utc_now_iso(),
        "uptime": uptime_seconds(),
    }

# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

from fastapi import Request

from app.infra.config import Settings, get_settings


def get_app_settings(request: Request) -> Settings:
    """create_app 注入的配置；未注入时回退到全局配置"""
    settings = getattr(request.app.state, "settings", None)
    return settings if isinstance(settings, Settings) else get_settings()

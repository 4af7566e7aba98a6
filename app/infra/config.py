# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """全局配置，从 .env / 环境变量读取"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 运行环境
    ENV: str = Field(
        "development",
        description="运行环境: development / production / test",
        validation_alias=AliasChoices("ENV", "APP_ENV", "env"),
    )

    # HTTP
    HOST: str = Field("0.0.0.0", description="监听地址")
    PORT: int = Field(3001, description="监听端口", validation_alias=AliasChoices("PORT", "port"))
    CORS_ORIGINS: str = Field(
        "*",
        description="允许跨域的来源，逗号分隔",
        validation_alias=AliasChoices("CORS_ORIGINS", "cors_origins"),
    )
    MAX_BODY_BYTES: int = Field(
        10 * 1024 * 1024,
        description="请求体上限（字节）",
        validation_alias=AliasChoices("MAX_BODY_BYTES", "max_body_bytes"),
    )

    # 日志
    LOG_LEVEL: str = Field(
        "info",
        description="日志级别: debug / info / warn / error",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )
    LOG_DIR: str = Field(
        "logs",
        description="日志文件目录",
        validation_alias=AliasChoices("LOG_DIR", "log_dir"),
    )
    LOG_TO_FILE: bool = Field(
        True,
        description="是否写日志文件（combined / error / exceptions / rejections）",
        validation_alias=AliasChoices("LOG_TO_FILE", "log_to_file"),
    )
    LOG_MAX_BYTES: int = Field(5 * 1024 * 1024, description="单个日志文件上限（字节）")
    LOG_BACKUP_COUNT: int = Field(5, description="日志文件保留个数")

    # 错误响应中是否带 stack / details；未设置时仅 development 打开
    DIAGNOSTIC_MODE: Optional[bool] = Field(
        None,
        description="诊断模式（可选）",
        validation_alias=AliasChoices("DIAGNOSTIC_MODE", "diagnostic_mode"),
    )

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def diagnostic_mode(self) -> bool:
        if self.DIAGNOSTIC_MODE is not None:
            return self.DIAGNOSTIC_MODE
        return self.ENV.lower() == "development"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def log_level_no(self) -> int:
        name = self.LOG_LEVEL.strip().upper()
        if name == "WARN":
            name = "WARNING"
        level = logging.getLevelName(name)
        return level if isinstance(level, int) else logging.INFO


@lru_cache
def get_settings() -> Settings:
    return Settings()

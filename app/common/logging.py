# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""结构化日志

- create_logger(service) 返回绑定 service 的 logger，同名复用
- 每条记录: level / message / service / timestamp / meta
- sink 由 LoggingService 统一装配（console + 按级别分文件），在进程启动时 start，退出时 stop
"""

from __future__ import annotations

import copy
import json
import logging
import os
import queue
import threading
import traceback
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Tuple

from app.infra.config import Settings

ROOT_LOGGER = "friendmatch"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_RESERVED = ("timestamp", "level", "service", "message", "stack")
_LEVELS = {logging.WARNING: "warn"}

_loggers: Dict[str, "ServiceLogger"] = {}
_loggers_lock = threading.Lock()


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseException):
        return {
            "message": str(value),
            "stack": "".join(traceback.format_exception(type(value), value, value.__traceback__)),
        }
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


def _record_meta(record: logging.LogRecord) -> Dict[str, Any]:
    meta = getattr(record, "meta", None)
    return dict(meta) if isinstance(meta, Mapping) else {}


class JsonFormatter(logging.Formatter):
    """一行一个 JSON 对象，stack 单独成字段"""

    def __init__(self) -> None:
        super().__init__(datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        data: Dict[str, Any] = {}
        for key, value in _jsonable(_record_meta(record)).items():
            if key not in _RESERVED:
                data[key] = value
        data["timestamp"] = self.formatTime(record, self.datefmt)
        data["level"] = _LEVELS.get(record.levelno, record.levelname.lower())
        data["service"] = getattr(record, "service", record.name)
        data["message"] = record.getMessage()
        if record.exc_info:
            data["stack"] = self.formatException(record.exc_info)
        elif record.exc_text:
            data["stack"] = record.exc_text
        return json.dumps(data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            "[%(asctime)s - %(levelname)s - %(service)s - %(message)s]",
            datefmt=DATE_FORMAT,
        )

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        if not hasattr(record, "service"):
            record.service = record.name
        line = super().format(record)
        meta = _record_meta(record)
        if meta:
            line += "\n" + json.dumps(_jsonable(meta), ensure_ascii=False, indent=2, default=str)
        return line


class ServiceLogger(logging.LoggerAdapter):
    """绑定 service 的 logger

    用法: logger.info("Incoming request", meta={"method": "GET"})
    """

    def __init__(self, logger: logging.Logger, service: str) -> None:
        super().__init__(logger, {"service": service})

    @property
    def service(self) -> str:
        return self.extra["service"]

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        meta = kwargs.pop("meta", None)
        extra = dict(kwargs.get("extra") or {})
        extra["service"] = self.service
        extra["meta"] = dict(meta) if meta else {}
        kwargs["extra"] = extra
        return msg, kwargs

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        # 日志失败不能影响调用方
        try:
            super().log(level, msg, *args, **kwargs)
        except Exception:  # noqa: BLE001
            pass

    def warn(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        self.warning(msg, *args, **kwargs)


def create_logger(service: str) -> ServiceLogger:
    if not isinstance(service, str) or not service.strip():
        raise ValueError("service name must be a non-empty string")

    with _loggers_lock:
        logger = _loggers.get(service)
        if logger is None:
            logger = ServiceLogger(logging.getLogger(f"{ROOT_LOGGER}.{service}"), service)
            _loggers[service] = logger
        return logger


class _SnapshotQueueHandler(QueueHandler):
    """入队时固定 message 和 meta，保留 exc_info 交给下游 formatter"""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        record = copy.copy(record)
        record.msg = record.getMessage()
        record.args = None
        meta = getattr(record, "meta", None)
        if isinstance(meta, Mapping):
            try:
                record.meta = copy.deepcopy(dict(meta))
            except Exception:  # noqa: BLE001
                record.meta = dict(meta)
        return record


def queued(*handlers: logging.Handler) -> Tuple[QueueHandler, QueueListener]:
    """handlers 挂到独立线程：调用方只入队"""
    q: "queue.Queue[logging.LogRecord]" = queue.Queue(-1)
    return _SnapshotQueueHandler(q), QueueListener(q, *handlers, respect_handler_level=True)


def file_handler(path: str, settings: Settings, level: int = logging.NOTSET) -> RotatingFileHandler:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    return handler


class LoggingService:
    """进程级日志出口：start() 装配 sink，stop() 刷新并卸载"""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.handlers: List[logging.Handler] = []
        self._queue_handler: Optional[QueueHandler] = None
        self._listener: Optional[QueueListener] = None
        self._prev_level = logging.NOTSET

    @property
    def started(self) -> bool:
        return self._listener is not None

    def _build_handlers(self) -> List[logging.Handler]:
        console = logging.StreamHandler()
        console.setFormatter(ConsoleFormatter())
        handlers: List[logging.Handler] = [console]

        if self.settings.LOG_TO_FILE:
            log_dir = self.settings.LOG_DIR
            handlers.append(file_handler(os.path.join(log_dir, "combined.log"), self.settings))
            handlers.append(file_handler(os.path.join(log_dir, "error.log"), self.settings, logging.ERROR))
        return handlers

    def start(self) -> "LoggingService":
        if self.started:
            return self

        self.handlers = self._build_handlers()
        self._queue_handler, self._listener = queued(*self.handlers)

        root = logging.getLogger(ROOT_LOGGER)
        self._prev_level = root.level
        root.setLevel(self.settings.log_level_no)
        root.addHandler(self._queue_handler)
        self._listener.start()
        return self

    def stop(self) -> None:
        if not self.started:
            return

        root = logging.getLogger(ROOT_LOGGER)
        if self._queue_handler is not None:
            root.removeHandler(self._queue_handler)
        root.setLevel(self._prev_level)
        self._listener.stop()
        for h in self.handlers:
            h.close()

        self.handlers = []
        self._queue_handler = None
        self._listener = None


def setup_logging(settings: Settings) -> LoggingService:
    """初始化全局日志"""

    return LoggingService(settings).start()

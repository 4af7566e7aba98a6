# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""进程级异常出口

未捕获异常（sys / threading excepthook）和未处理的 asyncio 异常
分别写入 exceptions / rejections 两个 logger（可选落文件）。
由应用 lifespan 显式 install / uninstall。
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import threading
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, List, Optional, Tuple

from app.common.logging import ServiceLogger, create_logger, file_handler, queued
from app.infra.config import Settings


class DiagnosticSinks:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.exceptions = create_logger("exceptions")
        self.rejections = create_logger("rejections")
        self._file_sinks: List[Tuple[ServiceLogger, QueueHandler, QueueListener, logging.Handler]] = []
        self._prev_excepthook: Any = None
        self._prev_threading_hook: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._prev_loop_handler: Any = None
        self.installed = False

    def install(self) -> "DiagnosticSinks":
        if self.installed:
            return self

        if self.settings.LOG_TO_FILE:
            for adapter, filename in ((self.exceptions, "exceptions.log"), (self.rejections, "rejections.log")):
                handler = file_handler(os.path.join(self.settings.LOG_DIR, filename), self.settings)
                queue_handler, listener = queued(handler)
                listener.start()
                adapter.logger.addHandler(queue_handler)
                self._file_sinks.append((adapter, queue_handler, listener, handler))

        self._prev_excepthook = sys.excepthook
        self._prev_threading_hook = threading.excepthook
        sys.excepthook = self._excepthook
        threading.excepthook = self._threading_excepthook
        self.installed = True
        return self

    def install_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._prev_loop_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._loop_exception_handler)

    def uninstall(self) -> None:
        if not self.installed:
            return

        if sys.excepthook == self._excepthook:
            sys.excepthook = self._prev_excepthook
        if threading.excepthook == self._threading_excepthook:
            threading.excepthook = self._prev_threading_hook
        if self._loop is not None and not self._loop.is_closed():
            self._loop.set_exception_handler(self._prev_loop_handler)
        self._loop = None

        for adapter, queue_handler, listener, handler in self._file_sinks:
            adapter.logger.removeHandler(queue_handler)
            listener.stop()
            handler.close()
        self._file_sinks = []
        self.installed = False

    def _excepthook(self, exc_type, exc, tb) -> None:
        self.exceptions.error(
            "Uncaught exception",
            meta={"type": exc_type.__name__},
            exc_info=(exc_type, exc, tb),
        )
        if self._prev_excepthook is not None:
            self._prev_excepthook(exc_type, exc, tb)

    def _threading_excepthook(self, args: threading.ExceptHookArgs) -> None:
        self.exceptions.error(
            "Uncaught exception in thread",
            meta={"type": args.exc_type.__name__, "thread": getattr(args.thread, "name", None)},
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        if self._prev_threading_hook is not None:
            self._prev_threading_hook(args)

    def _loop_exception_handler(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        meta = {"context": context.get("message", "")}
        task = context.get("task") or context.get("future")
        if task is not None:
            meta["task"] = repr(task)

        if isinstance(exc, BaseException):
            self.rejections.error("Unhandled rejection", meta=meta, exc_info=(type(exc), exc, exc.__traceback__))
        else:
            self.rejections.error("Unhandled rejection", meta=meta)

        if self._prev_loop_handler is not None:
            self._prev_loop_handler(loop, context)

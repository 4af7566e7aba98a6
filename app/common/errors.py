# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(eq=False)
class AppError(Exception):
    """异常统一"""
    message: str
    status_code: int = 500
    is_operational: bool = True
    details: Optional[Any] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    @property
    def stack(self) -> Optional[str]:
        if self.__traceback__ is None:
            return None
        return "".join(traceback.format_exception(type(self), self, self.__traceback__))


class NotFoundError(AppError):
    def __init__(self, message: str = "not found", details: Any = None) -> None:
        super().__init__(message=message, status_code=404, is_operational=True, details=details)


def create_error(message: str, status_code: int = 500, is_operational: bool = True) -> AppError:
    return AppError(message=message, status_code=status_code, is_operational=is_operational)

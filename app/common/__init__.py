# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""通用基础设施（错误/日志/中间件）

约定：
- 业务错误统一通过 AppError 抛出（或 create_error 构造），由 error_handler 转为标准错误信封
- 每个请求由 RequestLoggerMiddleware 记录开始与完成（状态码、耗时）
"""

from __future__ import annotations

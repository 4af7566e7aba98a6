# -*- coding: utf-8 -*-
# @Author: yaccii
# @Description:

"""统一日志出口

sink 由 app.common.logging.LoggingService 装配。
这里仅提供进程默认 logger（service=app），避免各处重复 create_logger。
"""

from app.common.logging import create_logger

applog = create_logger("app")

"""
lecture_relay.core.logging
~~~~~~~~~~~~~~~~~~~~~~~~~~

统一日志配置，根据环境自动设置日志级别和格式。

所有模块应通过 ``get_logger(__name__)`` 获取 logger 实例，
不要直接使用 ``print()`` 输出调试信息。

每条日志都带有 ``request_id``：HTTP 请求来自 ``X-Request-ID`` 头（或新生成），
WebSocket 连接为 ``ws-xxxxxxxx``，便于把同一连接的日志串起来。
"""
from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

from lecture_relay.core.settings import settings

# 日志格式：时间 | 级别 | 请求 ID | 模块名 | 消息
_LOG_FORMAT: str = "%(asctime)s | %(levelname)-7s | %(request_id)s | %(name)s | %(message)s"
_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

request_id_ctx_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """把当前上下文中的 request_id 注入日志记录。"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx_var.get()
        return True


def setup_logging() -> None:
    """根据当前环境配置全局日志。应在应用启动时调用一次。"""
    level = getattr(logging, settings.effective_log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    handler.addFilter(RequestIdFilter())

    logging.basicConfig(
        level=level,
        handlers=[handler],
        force=True,  # 覆盖可能已有的 basicConfig
    )

    # 降低第三方库的日志噪音
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)
    logging.getLogger("python_multipart").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """获取指定模块的 logger 实例。

    Args:
        name: 模块名，通常传 ``__name__``。

    Returns:
        配置好的 ``logging.Logger`` 实例。
    """
    return logging.getLogger(name)

"""
lecture_relay.core.rate_limit
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

HTTP 接口的限流配置。

WebSocket 通道不限流：主讲人的翻页与字幕更新一旦被丢弃，观众端状态就会落后。
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

# 基于客户端 IP 地址进行限流，计数保存在进程内存中
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
)

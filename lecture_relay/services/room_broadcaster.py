"""
lecture_relay.services.room_broadcaster
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 广播器 —— 把一个事件序列化一次，投递到房间内目标连接各自的出站队列。

每个连接有一个有界队列和一个按需启动的写协程：
  - ``broadcast`` / ``send`` 只入队，不等待网络写入，调用方持锁期间不会被慢连接拖住；
  - 队列满时丢弃本条消息（发得出就发，发不出就跳过）；
  - 写协程按入队顺序逐条写出，写失败或超时只记日志，
    不重试，也不修改房间状态（连接的摘除由网关在断开时完成）。
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING

from fastapi import WebSocket
from pydantic import BaseModel
from starlette.websockets import WebSocketState

from lecture_relay.core.logging import get_logger

if TYPE_CHECKING:
    from lecture_relay.services.session_room import SessionRoom

logger = get_logger(__name__)


class Audience(str, Enum):
    """广播目标。"""

    ALL_VIEWERS = "all_viewers"
    HOST_ONLY = "host_only"


def is_ready(connection: WebSocket) -> bool:
    """连接两端都处于 CONNECTED 状态时才可写。"""
    return (
        connection.application_state == WebSocketState.CONNECTED
        and connection.client_state == WebSocketState.CONNECTED
    )


class _Outbox:
    """单个连接的出站队列，以及正在清空它的写协程。"""

    def __init__(self, maxsize: int) -> None:
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self.writer: asyncio.Task[None] | None = None


class RoomBroadcaster:
    """进程内共享的广播器，所有房间共用一个实例。

    Attributes:
        send_timeout: 单条消息的写超时（秒）。
        queue_size: 每个连接最多积压的消息数，超出的消息直接丢弃。
    """

    def __init__(self, send_timeout: float = 5.0, queue_size: int = 64) -> None:
        self.send_timeout = send_timeout
        self.queue_size = queue_size
        self._outboxes: dict[WebSocket, _Outbox] = {}

    def broadcast(self, room: SessionRoom, audience: Audience, event: BaseModel) -> int:
        """向房间的指定受众广播事件。

        Returns:
            成功入队的连接数。
        """
        if audience is Audience.HOST_ONLY:
            targets = [room.host] if room.host is not None else []
        else:
            targets = list(room.viewers)
        return self._fan_out(targets, event.model_dump_json(), room.code)

    def send(self, connection: WebSocket, event: BaseModel) -> bool:
        """单独发给一个连接（如入场快照）。"""
        return self._fan_out([connection], event.model_dump_json(), None) == 1

    def release(self, connection: WebSocket) -> None:
        """连接离开房间时调用：丢弃未写出的消息并停止其写协程。"""
        outbox = self._outboxes.pop(connection, None)
        if outbox is not None and outbox.writer is not None:
            outbox.writer.cancel()

    async def drain(self) -> None:
        """等待所有已入队的消息写出（或被跳过）。"""
        while True:
            writers = [
                outbox.writer
                for outbox in self._outboxes.values()
                if outbox.writer is not None and not outbox.writer.done()
            ]
            if not writers:
                return
            await asyncio.wait(writers)

    async def aclose(self) -> None:
        """停止全部写协程，应用关闭时调用。"""
        writers = [o.writer for o in self._outboxes.values() if o.writer is not None]
        self._outboxes.clear()
        for writer in writers:
            writer.cancel()
        await asyncio.gather(*writers, return_exceptions=True)

    def _fan_out(self, targets: list[WebSocket], payload: str, code: str | None) -> int:
        queued = 0
        for ws in targets:
            if is_ready(ws) and self._enqueue(ws, payload, code):
                queued += 1
        return queued

    def _enqueue(self, connection: WebSocket, payload: str, code: str | None) -> bool:
        outbox = self._outboxes.get(connection)
        if outbox is None:
            outbox = self._outboxes[connection] = _Outbox(self.queue_size)

        try:
            outbox.queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("出站队列已满，丢弃消息 | room=%s", code)
            return False

        if outbox.writer is None or outbox.writer.done():
            outbox.writer = asyncio.get_running_loop().create_task(
                self._write_loop(connection, outbox, code),
            )
        return True

    async def _write_loop(self, connection: WebSocket, outbox: _Outbox, code: str | None) -> None:
        # 队列清空即退出，下次入队时再启动
        while not outbox.queue.empty():
            payload = outbox.queue.get_nowait()
            if not is_ready(connection):
                continue
            try:
                await asyncio.wait_for(connection.send_text(payload), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                logger.warning("写超时，本条消息跳过 | room=%s", code)
            except Exception as e:
                logger.warning("写失败，本条消息跳过 | room=%s | %r", code, e)

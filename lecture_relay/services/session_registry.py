"""
lecture_relay.services.session_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

会话注册表 —— 维护"会话码 → 房间"映射，管理所有房间的生命周期。

- 房间在首次被连接或首次收到课件上传时懒创建；
- 房间在最后一个连接断开的那一刻（无主讲人且无观众）被移除；
- 只由上传创建、始终没人连接的房间没有断开事件可依赖，
  由 ``expire_if_unattended`` 在 ``idle_ttl`` 秒后检查并回收。

注册表在 FastAPI lifespan 中创建并挂载到 ``app.state.registry``，
测试可以各自实例化互不干扰的注册表。
"""
from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from lecture_relay.core.logging import get_logger
from lecture_relay.schemas.session_data import SessionInfoData
from lecture_relay.services.room_broadcaster import RoomBroadcaster
from lecture_relay.services.session_room import SessionRoom

logger = get_logger(__name__)

_UNSAFE_CODE_CHARS = re.compile(r"[^A-Z0-9]")


def normalize_code(raw: str | None, max_length: int = 32) -> str:
    """规范化会话码：去首尾空白、转大写、只保留 ``A-Z0-9``，并截断长度。

    返回空串表示无效会话码，调用方应拒绝该请求。
    """
    if not raw:
        return ""
    return _UNSAFE_CODE_CHARS.sub("", raw.strip().upper())[:max_length]


class SessionRegistry:
    """会话注册表。

    ``get_or_create`` 与 ``maybe_evict`` 内部没有 await，在单事件循环上天然原子；
    需要"拿到房间并保证它仍在册"的场景请使用 ``checkout``。

    Attributes:
        broadcaster: 注入给每个房间的广播器。
        code_max_length: 会话码最大长度。
        idle_ttl: 无人连接的房间最多保留的秒数。
    """

    def __init__(
        self,
        broadcaster: RoomBroadcaster,
        code_max_length: int = 32,
        idle_ttl: float = 600.0,
    ) -> None:
        self.broadcaster = broadcaster
        self.code_max_length = code_max_length
        self.idle_ttl = idle_ttl
        self._rooms: dict[str, SessionRoom] = {}
        self._expiry_tasks: dict[str, asyncio.Task[None]] = {}

    def normalize(self, raw: str | None) -> str:
        return normalize_code(raw, self.code_max_length)

    def get_or_create(self, code: str) -> SessionRoom:
        """获取会话码对应的房间，不存在则创建空房间。

        Raises:
            ValueError: 会话码规范化后为空。
        """
        key = self.normalize(code)
        if not key:
            raise ValueError("session code is empty after normalization")
        room = self._rooms.get(key)
        if room is None:
            room = SessionRoom(code=key, broadcaster=self.broadcaster)
            self._rooms[key] = room
            logger.info("会话房间已创建 | code=%s | 活跃房间: %d", key, len(self._rooms))
        return room

    def get(self, code: str) -> SessionRoom | None:
        """只查不建。"""
        return self._rooms.get(self.normalize(code))

    def maybe_evict(self, code: str) -> bool:
        """房间已空则从注册表移除。

        Returns:
            是否移除了房间。
        """
        key = self.normalize(code)
        room = self._rooms.get(key)
        if room is None or not room.is_empty:
            return False
        del self._rooms[key]
        logger.info("会话房间已回收 | code=%s | 活跃房间: %d", key, len(self._rooms))
        return True

    def expire_if_unattended(self, room: SessionRoom) -> None:
        """房间当前无人连接时，安排 ``idle_ttl`` 秒后再检查一次，届时仍空则回收。

        期间有人连入再离开的房间会被断开事件直接回收，这里的检查随之变成空操作。
        同一会话码重复调用时以最后一次为准。
        """
        if not room.is_empty:
            return
        previous = self._expiry_tasks.pop(room.code, None)
        if previous is not None:
            previous.cancel()
        self._expiry_tasks[room.code] = asyncio.get_running_loop().create_task(
            self._expire_later(room),
        )

    async def _expire_later(self, room: SessionRoom) -> None:
        try:
            await asyncio.sleep(self.idle_ttl)
            async with room.lock:
                if self._rooms.get(room.code) is room and self.maybe_evict(room.code):
                    logger.info("无人连接的房间已过期 | code=%s", room.code)
        finally:
            if self._expiry_tasks.get(room.code) is asyncio.current_task():
                del self._expiry_tasks[room.code]

    async def aclose(self) -> None:
        """取消所有待执行的过期检查，应用关闭时调用。"""
        tasks = list(self._expiry_tasks.values())
        self._expiry_tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    @asynccontextmanager
    async def checkout(self, code: str) -> AsyncIterator[SessionRoom]:
        """获取（或创建）房间并持有其锁，保证进入时房间仍在册。

        等锁期间房间可能恰好被回收，此时重新获取新房间再试。

        .. code-block:: python

            async with registry.checkout("ABC123") as room:
                await room.attach_viewer(websocket)
        """
        while True:
            room = self.get_or_create(code)
            async with room.lock:
                if self._rooms.get(room.code) is not room:
                    continue
                yield room
                return

    def __contains__(self, code: str) -> bool:
        return self.normalize(code) in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def list_rooms(self) -> list[SessionInfoData]:
        """列出所有活跃房间的摘要信息。"""
        return [room.info() for room in self._rooms.values()]

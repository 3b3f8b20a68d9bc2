"""
lecture_relay.services.session_room
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

会话房间领域模型 —— 一个会话码对应一个 ``SessionRoom``。

房间持有（但不创建）连接：至多一个主讲人连接、一组观众连接，
以及最近一次已知的演示状态（课件、页码、字幕），用于给迟到的观众补齐画面。

并发约定:
  所有 ``attach_* / detach_* / apply_*`` 方法都要求调用方已持有 ``room.lock``。
  锁保证同一房间的"修改 + 入队"按到达顺序整体执行；消息只进入各连接的出站队列，
  持锁期间不等待任何观众的网络写入。
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from fastapi import WebSocket

from lecture_relay.core.logging import get_logger
from lecture_relay.schemas.events import (
    DeckChangeEvent,
    DeckData,
    HostUpdate,
    PageChangeEvent,
    PresenceEvent,
    SlideData,
    SyncEvent,
    TranscriptChangeEvent,
)
from lecture_relay.schemas.session_data import SessionInfoData
from lecture_relay.services.room_broadcaster import Audience, RoomBroadcaster

logger = get_logger(__name__)

# 被新主讲人顶替时使用的关闭码（4000-4999 为应用自定义区间）
HOST_REPLACED_CLOSE_CODE: int = 4000
HOST_REPLACED_REASON: str = "replaced by a new host"


class ConnectionRole(str, Enum):
    """连接角色。"""

    HOST = "host"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, raw: str | None) -> ConnectionRole:
        """解析连接参数中的角色。

        ``host`` / ``teacher`` 为主讲人，其余一律按观众处理。
        """
        if raw and raw.strip().lower() in ("host", "teacher"):
            return cls.HOST
        return cls.VIEWER


class RoomState(str, Enum):
    """由主讲人槽位与观众集合推导出的房间状态。"""

    EMPTY = "empty"
    IDLE_HOSTED = "idle_hosted"
    LIVE = "live"
    ORPHANED = "orphaned"


@dataclass
class Presentation:
    """最近一次已知的演示状态。

    ``page`` 恒 >= 1；``num_pages`` 为 0 表示未知。一旦 ``num_pages`` > 0，
    ``page`` 不超过 ``num_pages``。
    """

    deck_url: str = ""
    deck_name: str = ""
    num_pages: int = 0
    page: int = 1
    transcript: str = ""

    @property
    def deck_set(self) -> bool:
        return bool(self.deck_url)

    def clamp_page(self) -> None:
        if self.num_pages > 0 and self.page > self.num_pages:
            self.page = self.num_pages


class SessionRoom:
    """一个会话码对应的房间实体。

    Attributes:
        code: 规范化后的会话码。
        host: 当前主讲人连接，至多一个。
        viewers: 观众连接集合（按连接对象去重）。
        presentation: 最近一次已知的演示状态。
        lock: 串行化本房间所有修改与广播的锁。
    """

    def __init__(self, code: str, broadcaster: RoomBroadcaster) -> None:
        self.code = code
        self.host: WebSocket | None = None
        self.viewers: set[WebSocket] = set()
        self.presentation = Presentation()
        self.lock = asyncio.Lock()
        self._broadcaster = broadcaster

    # ── 状态 ──────────────────────────────────────────────────────────

    @property
    def viewer_count(self) -> int:
        """当前在线观众数。"""
        return len(self.viewers)

    @property
    def is_empty(self) -> bool:
        """既无主讲人也无观众，可被注册表回收。"""
        return self.host is None and not self.viewers

    @property
    def state(self) -> RoomState:
        if self.host is None:
            return RoomState.ORPHANED if self.viewers else RoomState.EMPTY
        return RoomState.LIVE if self.viewers else RoomState.IDLE_HOSTED

    def snapshot(self) -> SyncEvent:
        """构造观众入场时下发的完整快照。"""
        p = self.presentation
        deck = (
            DeckData(url=p.deck_url, name=p.deck_name, numPages=p.num_pages)
            if p.deck_set
            else None
        )
        return SyncEvent(
            pdf=deck,
            slide=SlideData(page=p.page, numPages=p.num_pages),
            transcript=p.transcript,
        )

    def info(self) -> SessionInfoData:
        """返回房间摘要信息。"""
        p = self.presentation
        return SessionInfoData(
            code=self.code,
            state=self.state.value,
            hasHost=self.host is not None,
            viewerCount=self.viewer_count,
            deckSet=p.deck_set,
            page=p.page,
            numPages=p.num_pages,
        )

    # ── 连接进出 ──────────────────────────────────────────────────────

    async def attach_host(self, connection: WebSocket) -> None:
        """安装主讲人连接；已有主讲人时先强制关闭旧连接。"""
        previous = self.host
        self.host = connection
        if previous is not None and previous is not connection:
            logger.info("主讲人被顶替，关闭旧连接 | room=%s", self.code)
            self._broadcaster.release(previous)
            try:
                await asyncio.wait_for(
                    previous.close(code=HOST_REPLACED_CLOSE_CODE, reason=HOST_REPLACED_REASON),
                    timeout=self._broadcaster.send_timeout,
                )
            except Exception as e:
                # 旧连接可能已经半断开
                logger.debug("关闭旧主讲人连接失败 | room=%s | %r", self.code, e)
        self._send_presence()

    async def attach_viewer(self, connection: WebSocket) -> None:
        """加入观众集合，立即下发快照，并通知主讲人人数变化。"""
        self.viewers.add(connection)
        self._broadcaster.send(connection, self.snapshot())
        self._send_presence()

    async def detach_host(self, connection: WebSocket) -> bool:
        """仅当槽位里仍是该连接时才清空，避免迟到的断开事件误删新主讲人。"""
        if self.host is not connection:
            return False
        self.host = None
        self._broadcaster.release(connection)
        return True

    async def detach_viewer(self, connection: WebSocket) -> bool:
        if connection not in self.viewers:
            return False
        self.viewers.discard(connection)
        self._broadcaster.release(connection)
        self._send_presence()
        return True

    # ── 主讲人更新 ────────────────────────────────────────────────────

    async def apply_host_update(self, sender: WebSocket, update: HostUpdate) -> bool:
        """应用来自连接的更新。非当前主讲人发来的更新静默忽略。

        Returns:
            是否被应用。
        """
        if sender is not self.host:
            logger.debug("忽略非主讲人连接的更新 | room=%s | type=%s", self.code, update.type)
            return False
        await self.apply_update(update)
        return True

    async def apply_update(self, update: HostUpdate) -> None:
        """修改演示状态并把同类事件广播给全部观众（课件上传也走这里）。"""
        p = self.presentation
        if isinstance(update, DeckChangeEvent):
            p.deck_url = update.url or p.deck_url
            p.deck_name = update.name or p.deck_name
            if update.numPages is not None:
                p.num_pages = update.numPages
            p.clamp_page()
            # 房间内的值已规范化，出站事件跳过宽松校验（0 页需原样下发）
            outbound: DeckChangeEvent | PageChangeEvent | TranscriptChangeEvent = (
                DeckChangeEvent.model_construct(
                    url=p.deck_url, name=p.deck_name, numPages=p.num_pages,
                )
            )
        elif isinstance(update, PageChangeEvent):
            if update.numPages is not None:
                p.num_pages = update.numPages
            if update.page is not None:
                p.page = update.page
            p.clamp_page()
            outbound = PageChangeEvent.model_construct(page=p.page, numPages=p.num_pages)
        elif isinstance(update, TranscriptChangeEvent):
            p.transcript = update.text
            outbound = TranscriptChangeEvent(text=p.transcript)
        else:
            return

        self._broadcaster.broadcast(self, Audience.ALL_VIEWERS, outbound)

    def _send_presence(self) -> None:
        self._broadcaster.broadcast(
            self, Audience.HOST_ONLY, PresenceEvent(count=self.viewer_count),
        )

"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 内存中的假 WebSocket 连接、独立的注册表，
以及带完整生命周期的 TestClient。
"""
from __future__ import annotations

import asyncio
import json
import os
import tempfile
from typing import Any

import pytest
from starlette.websockets import WebSocketState

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="lecture-relay-uploads-"))

from lecture_relay.core.rate_limit import limiter  # noqa: E402
from lecture_relay.services.room_broadcaster import RoomBroadcaster  # noqa: E402
from lecture_relay.services.session_registry import SessionRegistry  # noqa: E402
from lecture_relay.services.session_room import SessionRoom  # noqa: E402


class FakeConnection:
    """模拟 ``fastapi.WebSocket`` 中房间与广播器用到的那部分接口。"""

    def __init__(
        self,
        name: str = "conn",
        ready: bool = True,
        fail: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.sent: list[str] = []
        self.closed_with: tuple[int, str | None] | None = None
        self.application_state = WebSocketState.CONNECTED if ready else WebSocketState.CONNECTING
        self.client_state = WebSocketState.CONNECTED
        self.fail = fail
        self.delay = delay

    async def send_text(self, data: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_with = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(s) for s in self.sent]

    def __repr__(self) -> str:
        return f"FakeConnection({self.name!r})"


@pytest.fixture()
def make_conn() -> type[FakeConnection]:
    """返回假连接的构造器：``make_conn("viewer-1", fail=True)``。"""
    return FakeConnection


@pytest.fixture()
def broadcaster() -> RoomBroadcaster:
    return RoomBroadcaster(send_timeout=0.2)


@pytest.fixture()
def registry(broadcaster: RoomBroadcaster) -> SessionRegistry:
    return SessionRegistry(broadcaster=broadcaster)


@pytest.fixture()
def room(broadcaster: RoomBroadcaster) -> SessionRoom:
    return SessionRoom(code="ABC123", broadcaster=broadcaster)


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    limiter.reset()


@pytest.fixture()
def client():
    """带 lifespan 的 TestClient；所有 WebSocket 会话共享同一个事件循环。"""
    from fastapi.testclient import TestClient

    from lecture_relay.main import app

    with TestClient(app) as test_client:
        yield test_client

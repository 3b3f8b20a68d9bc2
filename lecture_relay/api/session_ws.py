"""
lecture_relay.api.session_ws
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 连接网关 —— 主讲人与观众共用 ``/ws?code=<会话码>&role=<角色>``。

- 会话码规范化后为空：握手前直接拒绝；
- ``role=host``（或 ``teacher``）为主讲人，同码新主讲人会顶掉旧连接；
  其他任何取值都按观众处理；
- 主讲人的消息解析后交给房间应用，解析失败的帧静默丢弃；
- 观众是只读的，发来的任何消息都不会被应用；
- 断开时按角色从房间摘除，并检查房间是否可回收。
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from lecture_relay.core.logging import get_logger, request_id_ctx_var
from lecture_relay.schemas.events import parse_host_update
from lecture_relay.services.session_registry import SessionRegistry
from lecture_relay.services.session_room import ConnectionRole, SessionRoom

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.websocket("/ws")
async def session_endpoint(
    websocket: WebSocket,
    code: str | None = None,
    role: str | None = None,
) -> None:
    """会话中继端点。

    Args:
        websocket: FastAPI WebSocket 连接对象。
        code: 会话码（大小写不敏感）。
        role: ``host`` / ``viewer``，默认观众。
    """
    ws_req_id = f"ws-{uuid.uuid4().hex[:8]}"
    token = request_id_ctx_var.set(ws_req_id)

    try:
        registry: SessionRegistry = websocket.app.state.registry
        session_code = registry.normalize(code)
        if not session_code:
            logger.info("拒绝连接：缺少会话码")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        conn_role = ConnectionRole.parse(role)
        await websocket.accept()

        async with registry.checkout(session_code) as room:
            if conn_role is ConnectionRole.HOST:
                await room.attach_host(websocket)
            else:
                await room.attach_viewer(websocket)
        logger.info(
            "连接已加入 | room=%s | role=%s | 观众: %d",
            room.code, conn_role.value, room.viewer_count,
        )

        try:
            await _receive_loop(websocket, room, conn_role)
        except WebSocketDisconnect:
            pass  # 正常断开
        except Exception as e:
            logger.error("WebSocket 处理异常: %s | room=%s", e, room.code, exc_info=True)
        finally:
            await _detach(registry, room, websocket, conn_role)

    finally:
        request_id_ctx_var.reset(token)


async def _receive_loop(
    websocket: WebSocket, room: SessionRoom, conn_role: ConnectionRole,
) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return

        if conn_role is not ConnectionRole.HOST:
            logger.debug("忽略观众发来的消息 | room=%s", room.code)
            continue

        raw = message.get("text")
        if raw is None:
            raw = message.get("bytes") or b""
        update = parse_host_update(raw)
        if update is None:
            logger.debug("丢弃无法解析的消息 | room=%s", room.code)
            continue

        async with room.lock:
            await room.apply_host_update(websocket, update)


async def _detach(
    registry: SessionRegistry,
    room: SessionRoom,
    websocket: WebSocket,
    conn_role: ConnectionRole,
) -> None:
    async with room.lock:
        if conn_role is ConnectionRole.HOST:
            await room.detach_host(websocket)
        else:
            await room.detach_viewer(websocket)
        registry.maybe_evict(room.code)
    logger.info(
        "连接已断开 | room=%s | role=%s | 观众: %d",
        room.code, conn_role.value, room.viewer_count,
    )

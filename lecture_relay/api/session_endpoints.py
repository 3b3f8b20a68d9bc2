"""
lecture_relay.api.session_endpoints
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

会话查询接口（只读，不会创建房间）。

端点:
  - ``GET /sessions``          → 活跃会话列表
  - ``GET /sessions/{code}``   → 会话详情（含观众入场快照）
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from lecture_relay.api.deps import get_registry
from lecture_relay.core.rate_limit import limiter
from lecture_relay.core.settings import settings
from lecture_relay.schemas.api_response import ApiResponse
from lecture_relay.schemas.session_data import SessionDetailData, SessionInfoData
from lecture_relay.services.session_registry import SessionRegistry

router: APIRouter = APIRouter()


@router.get(
    "/sessions",
    summary="获取活跃会话列表",
    response_model=ApiResponse[list[SessionInfoData]],
)
@limiter.limit(settings.API_RATE_LIMIT)
async def list_sessions(
    request: Request, registry: SessionRegistry = Depends(get_registry),
):
    """返回所有活跃会话的摘要。"""
    return ApiResponse.ok(data=registry.list_rooms())


@router.get(
    "/sessions/{code}",
    summary="获取会话详情",
    response_model=ApiResponse[SessionDetailData],
)
@limiter.limit(settings.API_RATE_LIMIT)
async def session_detail(
    request: Request, code: str, registry: SessionRegistry = Depends(get_registry),
):
    """返回指定会话的摘要与当前快照。

    Args:
        code: 会话码（大小写不敏感）。
    """
    room = registry.get(code)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return ApiResponse.ok(data=SessionDetailData(info=room.info(), snapshot=room.snapshot()))

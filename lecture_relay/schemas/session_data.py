"""
lecture_relay.schemas.session_data
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

会话查询与课件上传接口的 Pydantic 响应模型。
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from lecture_relay.schemas.events import SyncEvent


class UploadResponseData(BaseModel):
    """课件上传成功后的响应。"""

    url: str = Field(..., description="课件的可访问地址")
    name: str = Field(..., description="课件显示名（原始文件名）")
    numPages: int = Field(..., description="房间当前记录的课件页数")


class SessionInfoData(BaseModel):
    """会话房间摘要信息。"""

    code: str = Field(..., description="规范化后的会话码")
    state: str = Field(..., description="房间状态：empty / idle_hosted / live / orphaned")
    hasHost: bool = Field(..., description="是否有主讲人在线")
    viewerCount: int = Field(..., description="当前在线观众数")
    deckSet: bool = Field(..., description="是否已设置课件")
    page: int = Field(..., description="当前页码")
    numPages: int = Field(..., description="课件总页数")


class SessionDetailData(BaseModel):
    """会话房间详情：摘要 + 观众入场时会收到的快照。"""

    info: SessionInfoData
    snapshot: SyncEvent

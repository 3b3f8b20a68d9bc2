"""
lecture_relay.schemas.events
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 线上消息模型。

主讲人 → 服务端（仅接受这三种，按 ``type`` 区分）:
  - ``pdf``        —— 切换课件 ``{url, name, numPages}``
  - ``slide``      —— 翻页 ``{page, numPages}``
  - ``transcript`` —— 字幕全文替换 ``{text}``

服务端 → 观众:
  - ``sync``       —— 入场时一次性下发完整快照
  - 以及上面三种事件的原样转发（字段取房间更新后的值）

服务端 → 主讲人:
  - ``presence``   —— 当前观众数 ``{count}``

数值字段采用宽松解析：非法值（非数字、NaN、inf、<1）被转成 ``None``，
表示"保留房间原值"，而不是让整条消息作废。
"""
from __future__ import annotations

import math
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator


def coerce_positive_int(value: Any) -> int | None:
    """把页码 / 页数类字段转换为 >=1 的整数，无法转换时返回 ``None``。

    接受 int、有限 float 以及数字字符串（前端可能把数字当字符串发）。
    小数向零截断。
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            value = float(value)
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value < 1:
        return None
    return int(value)


# ── 主讲人 → 服务端 ───────────────────────────────────────────────────

class DeckChangeEvent(BaseModel):
    """切换课件。空的 ``url`` / ``name`` 表示沿用原值。"""

    type: Literal["pdf"] = "pdf"
    url: str = Field(default="", description="课件的可访问地址")
    name: str = Field(default="", description="课件显示名")
    numPages: int | None = Field(default=None, description="课件总页数")

    @field_validator("url", "name", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator("numPages", mode="before")
    @classmethod
    def _lenient_count(cls, value: Any) -> int | None:
        return coerce_positive_int(value)


class PageChangeEvent(BaseModel):
    """翻页。``numPages`` 可选，同时更新总页数。"""

    type: Literal["slide"] = "slide"
    page: int | None = Field(default=None, description="当前页码（从 1 开始）")
    numPages: int | None = Field(default=None, description="课件总页数")

    @field_validator("page", "numPages", mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> int | None:
        return coerce_positive_int(value)


class TranscriptChangeEvent(BaseModel):
    """字幕全文替换。"""

    type: Literal["transcript"] = "transcript"
    text: str = Field(default="", description="当前完整字幕文本")

    @field_validator("text", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)


HostUpdate = Annotated[
    Union[DeckChangeEvent, PageChangeEvent, TranscriptChangeEvent],
    Field(discriminator="type"),
]

_host_update_adapter: TypeAdapter[HostUpdate] = TypeAdapter(HostUpdate)


def parse_host_update(raw: str | bytes) -> HostUpdate | None:
    """解析一帧入站消息。

    非 JSON、缺少 ``type``、未知 ``type`` 或结构不符都返回 ``None``，
    由调用方静默丢弃。
    """
    try:
        return _host_update_adapter.validate_json(raw)
    except (ValidationError, UnicodeDecodeError):
        return None


# ── 服务端 → 客户端 ───────────────────────────────────────────────────

class DeckData(BaseModel):
    """课件引用（``sync`` 中的 ``pdf`` 字段）。"""

    url: str
    name: str
    numPages: int


class SlideData(BaseModel):
    """当前页位置（``sync`` 中的 ``slide`` 字段）。"""

    page: int
    numPages: int


class SyncEvent(BaseModel):
    """观众入场时的完整快照。"""

    type: Literal["sync"] = "sync"
    pdf: DeckData | None = None
    slide: SlideData
    transcript: str = ""


class PresenceEvent(BaseModel):
    """发给主讲人的在线观众数。"""

    type: Literal["presence"] = "presence"
    count: int

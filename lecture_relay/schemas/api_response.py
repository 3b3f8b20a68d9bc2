"""
lecture_relay.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

全局统一应答体，会话查询接口与所有错误响应复用此结构。

课件上传成功时按前端约定直接返回 ``{url, name, numPages}``，不套此信封；
上传失败（4xx / 5xx）同样经由全局异常处理器渲染为此结构。
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 JSON 应答体。

    .. code-block:: json

        {"code": 200, "data": {...}, "msg": "success"}

    Attributes:
        code: 业务状态码，与 HTTP 状态码保持一致。
        data: 实际业务数据，失败时为 ``null``。
        msg: 人类可读的状态消息，失败时为稳定的错误文案。
    """

    code: int = Field(default=200, description="业务状态码")
    data: T = Field(..., description="业务数据")
    msg: str = Field(default="success", description="状态消息")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        """快捷构造成功响应。"""
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str = "error", code: int = 500, data: Any = None) -> ApiResponse[Any]:
        """快捷构造失败响应。"""
        return cls(code=code, data=data, msg=msg)

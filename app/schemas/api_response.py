"""
app.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~

全局统一应答体，所有 REST 接口复用此结构返回一致的 JSON 格式。

独立于 ``core/`` 包，遵循 FastAPI 社区惯例：
schemas/ 存放请求/响应的 Pydantic 模型。
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from app.schemas.results import FieldError

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 JSON 应答体。

    .. code-block:: json

        {"code": 200, "data": {...}, "msg": "success", "errors": []}

    Attributes:
        code: 业务状态码，200 表示成功，400 / 404 / 500 表示对应的失败类别。
        data: 实际业务数据。
        msg: 人类可读的状态消息。
        errors: 字段级错误（校验或冲突失败时填充）。
    """

    code: int = Field(default=200, description="业务状态码")
    data: T | None = Field(default=None, description="业务数据")
    msg: str = Field(default="success", description="状态消息")
    errors: list[FieldError] = Field(default_factory=list, description="字段错误列表")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        """快捷构造成功响应。"""
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(
        cls,
        msg: str = "error",
        code: int = 500,
        data: Any = None,
        errors: list[FieldError] | None = None,
    ) -> ApiResponse[Any]:
        """快捷构造失败响应。"""
        return cls(code=code, data=data, msg=msg, errors=errors or [])

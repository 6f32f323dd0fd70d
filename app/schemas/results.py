"""
app.schemas.results
~~~~~~~~~~~~~~~~~~~

领域操作的类型化结果。

预期内的业务错误（校验失败、冲突、资源不存在）不抛异常，而是以
``OperationResult`` 返回，调用方据 ``error_kind`` 映射为 400 / 404 等语义。
"""
from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

ErrorKind = Literal["validation", "conflict", "not_found", "internal"]


class FieldError(BaseModel):
    """单个字段的错误描述。"""

    field: str = Field(..., description="出错字段名")
    message: str = Field(..., description="人类可读的错误信息")


class OperationResult(BaseModel, Generic[T]):
    """领域操作结果。

    Attributes:
        success: 是否成功。
        data: 成功时的业务数据。
        errors: 失败时的字段错误列表。
        error_kind: 失败类别，成功时为 ``None``。
    """

    success: bool = Field(..., description="是否成功")
    data: T | None = Field(default=None, description="业务数据")
    errors: list[FieldError] = Field(default_factory=list, description="字段错误列表")
    error_kind: ErrorKind | None = Field(default=None, description="失败类别")

    @classmethod
    def ok(cls, data: T) -> OperationResult[T]:
        """快捷构造成功结果。"""
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        errors: list[FieldError] | None = None,
        field: str = "general",
        message: str = "",
    ) -> OperationResult[Any]:
        """快捷构造失败结果，可直接给出单个 ``field`` + ``message``。"""
        if errors is None:
            errors = [FieldError(field=field, message=message)]
        return cls(success=False, errors=errors, error_kind=kind)

    @property
    def first_message(self) -> str:
        """第一条错误信息，便于推送给客户端。"""
        return self.errors[0].message if self.errors else ""

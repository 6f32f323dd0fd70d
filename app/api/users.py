"""
app.api.users
~~~~~~~~~~~~~

用户 REST 接口。

端点:
  - ``POST /users``                           → 注册用户
  - ``GET  /users/{user_id}``                 → 获取用户
  - ``GET  /users/check/username/{username}`` → 用户名是否可用
  - ``GET  /users/check/email/{email}``       → 邮箱是否可用
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.deps import get_identity
from app.schemas.api_response import ApiResponse
from app.schemas.chat import User
from app.schemas.results import OperationResult
from app.services.identity import IdentityResolver

router: APIRouter = APIRouter()

_STATUS_BY_KIND = {"validation": 400, "conflict": 400, "not_found": 404, "internal": 500}


class RegisterUserRequest(BaseModel):
    """注册请求体。"""

    username: str = Field(..., description="用户名（2-50 字符）")
    email: str | None = Field(default=None, description="可选邮箱")


def to_response(result: OperationResult, msg: str = "success") -> ApiResponse:
    """把领域结果映射为统一应答体。"""
    if result.success:
        return ApiResponse.ok(data=result.data, msg=msg)
    return ApiResponse.fail(
        msg=result.first_message,
        code=_STATUS_BY_KIND.get(result.error_kind, 500),
        errors=result.errors,
    )


@router.post("/users", summary="注册用户")
async def register_user(
    request: RegisterUserRequest,
    identity: IdentityResolver = Depends(get_identity),
) -> ApiResponse[User]:
    result = await identity.register_user(request.username, request.email)
    return to_response(result, msg="User created successfully")


@router.get("/users/check/username/{username}", summary="检查用户名是否可用")
async def check_username(
    username: str,
    identity: IdentityResolver = Depends(get_identity),
) -> ApiResponse[dict]:
    available = await identity.is_username_available(username)
    return ApiResponse.ok(data={"username": username, "available": available})


@router.get("/users/check/email/{email}", summary="检查邮箱是否可用")
async def check_email(
    email: str,
    identity: IdentityResolver = Depends(get_identity),
) -> ApiResponse[dict]:
    available = await identity.is_email_available(email)
    return ApiResponse.ok(data={"email": email, "available": available})


@router.get("/users/{user_id}", summary="获取用户")
async def get_user(
    user_id: str,
    identity: IdentityResolver = Depends(get_identity),
) -> ApiResponse[User]:
    return to_response(await identity.get_user(user_id))

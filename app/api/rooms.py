"""
app.api.rooms
~~~~~~~~~~~~~

房间 REST 接口 —— 房间管理 + 历史回看。

端点:
  - ``GET  /rooms/owner/{user_id}``    → 获取用户的活跃房间列表
  - ``POST /rooms``                    → 创建房间
  - ``GET  /rooms/{room_id}/messages`` → 获取房间消息（按时间正序）
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.api.deps import get_message_log, get_room_store
from app.api.users import to_response
from app.db.message_log import MessageLog
from app.db.room_store import RoomStore
from app.schemas.api_response import ApiResponse
from app.schemas.chat import Room, RoomSummary

router: APIRouter = APIRouter()


class CreateRoomBody(BaseModel):
    """创建房间请求体。"""

    user_id: str = Field(..., alias="userId", description="房间所有者 ID")
    name: str = Field(..., description="房间名称")
    description: str | None = Field(default=None, description="可选描述")


# ── 房间管理端点 ──────────────────────────────────────────────────────


@router.get("/rooms/owner/{user_id}", summary="获取用户的活跃房间")
async def list_rooms(
    user_id: str,
    rooms: RoomStore = Depends(get_room_store),
) -> ApiResponse[list[RoomSummary]]:
    return ApiResponse.ok(data=await rooms.list_active(user_id))


@router.post("/rooms", summary="创建房间")
async def create_room(
    body: CreateRoomBody,
    rooms: RoomStore = Depends(get_room_store),
) -> ApiResponse[Room]:
    result = await rooms.create(body.user_id, body.name, body.description)
    return to_response(result, msg="Room created successfully")


# ── 历史回看端点 ──────────────────────────────────────────────────────


@router.get("/rooms/{room_id}/messages", summary="获取房间消息")
async def get_messages(
    room_id: str,
    limit: int | None = Query(None, ge=1, le=500, description="只返回最近 N 条"),
    rooms: RoomStore = Depends(get_room_store),
    messages: MessageLog = Depends(get_message_log),
) -> ApiResponse[list[dict[str, Any]]]:
    """获取指定房间的消息记录（按时间正序）。"""
    if await rooms.get(room_id) is None:
        return ApiResponse.fail(msg="Room not found", code=404)
    history = await messages.history(room_id, limit=limit)
    return ApiResponse.ok(data=[m.to_payload() for m in history])

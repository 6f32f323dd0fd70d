"""
app.schemas.chat
~~~~~~~~~~~~~~~~

聊天领域模型（用户 / 房间 / 消息）以及 WebSocket 事件载荷。

领域模型字段使用 snake_case，与 MongoDB 文档保持一致；推送给客户端的载荷
通过 ``to_payload()`` / 驼峰别名转换为前端约定的 camelCase 结构。
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def as_utc(value: datetime) -> datetime:
    """MongoDB 默认返回 naive datetime（UTC），统一补齐时区。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MessageKind(str, Enum):
    """消息作者类别。"""

    HUMAN = "human"
    AI = "ai"
    SYSTEM = "system"


# ── 领域模型 ──────────────────────────────────────────────────────────


class User(BaseModel):
    """持久化的用户记录。"""

    id: str
    username: str
    email: str | None = None
    is_active: bool = True
    is_agent: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> User:
        return cls(
            id=doc["_id"],
            username=doc["username"],
            email=doc.get("email"),
            is_active=doc.get("is_active", True),
            is_agent=doc.get("is_agent", False),
            created_at=as_utc(doc["created_at"]),
            updated_at=as_utc(doc["updated_at"]),
        )


class Room(BaseModel):
    """聊天房间记录，归属于唯一的 owner。"""

    id: str
    name: str
    description: str | None = None
    is_active: bool = True
    owner_id: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Room:
        return cls(
            id=doc["_id"],
            name=doc["name"],
            description=doc.get("description"),
            is_active=doc.get("is_active", True),
            owner_id=doc["owner_id"],
            created_at=as_utc(doc["created_at"]),
            updated_at=as_utc(doc["updated_at"]),
        )


class RoomSummary(BaseModel):
    """房间列表项，附带消息数量。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime
    message_count: int = 0


class Message(BaseModel):
    """单条消息。``username`` 仅在读取历史时由作者信息回填。"""

    id: str
    content: str
    kind: MessageKind
    author_id: str
    room_id: str
    created_at: datetime
    seq: int
    username: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Message:
        return cls(
            id=doc["_id"],
            content=doc["content"],
            kind=MessageKind(doc["type"]),
            author_id=doc["author_id"],
            room_id=doc["room_id"],
            created_at=as_utc(doc["created_at"]),
            seq=doc["seq"],
        )

    def to_payload(self, username: str | None = None) -> dict[str, Any]:
        """转换为 ``new_message`` / ``ai_message`` / ``messages_list`` 的推送结构。"""
        return {
            "id": self.id,
            "content": self.content,
            "type": self.kind.value,
            "userId": self.author_id,
            "username": username or self.username or "Unknown User",
            "createdAt": self.created_at.isoformat(),
        }


# ── WebSocket 客户端请求载荷 ──────────────────────────────────────────


class ClientEnvelope(BaseModel):
    """客户端事件信封：``{"event": "...", "data": {...}}``。"""

    event: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class _ClientPayload(BaseModel):
    """客户端 → 服务端事件载荷基类（接受 camelCase 字段名）。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class JoinRoomRequest(_ClientPayload):
    room_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class LeaveRoomRequest(_ClientPayload):
    room_id: str = Field(..., min_length=1)


class SendMessageRequest(_ClientPayload):
    room_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=4000, description="消息文本")


class CreateRoomRequest(_ClientPayload):
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str | None = None


class GetRoomsRequest(_ClientPayload):
    user_id: str = Field(..., min_length=1)


class GetMessagesRequest(_ClientPayload):
    room_id: str = Field(..., min_length=1)

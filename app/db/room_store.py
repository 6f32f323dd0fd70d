"""
app.db.room_store
~~~~~~~~~~~~~~~~~

房间持久化仓库 —— 封装 MongoDB ``rooms`` 集合。

房间归属唯一的 owner，删除为逻辑删除（``is_active=False``），
保证历史消息始终能找到所属房间。
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.logging import get_logger
from app.schemas.chat import Room, RoomSummary
from app.schemas.results import FieldError, OperationResult

logger = get_logger(__name__)

_COLLECTION_NAME = "rooms"
_USERS_COLLECTION = "users"
_MESSAGES_COLLECTION = "messages"

ROOM_NAME_MAX_LENGTH = 255
ROOM_DESCRIPTION_MAX_LENGTH = 1000


class RoomStore:
    """房间仓库。

    Attributes:
        db: MongoDB 数据库实例。
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self._collection = db[_COLLECTION_NAME]
        self._users = db[_USERS_COLLECTION]
        self._messages = db[_MESSAGES_COLLECTION]

    async def ensure_indexes(self) -> None:
        """按 owner 分区 + 按更新时间排序。"""
        await self._collection.create_index(
            [("owner_id", 1), ("is_active", 1), ("updated_at", -1)],
            name="idx_owner_active_updated",
        )
        logger.debug("rooms 索引已就绪")

    async def create(
        self,
        owner_id: str,
        name: str,
        description: str | None = None,
    ) -> OperationResult[Room]:
        """为指定 owner 创建房间。

        Args:
            owner_id: 房间所有者的用户 ID。
            name: 房间名称（去除首尾空白后 1-255 字符）。
            description: 可选描述。

        Returns:
            成功时携带新房间；名称非法返回 ``validation``，owner 不存在返回 ``not_found``。
        """
        name = (name or "").strip()
        description = description.strip() if description else None

        errors: list[FieldError] = []
        if not name:
            errors.append(FieldError(field="name", message="Room name is required"))
        elif len(name) > ROOM_NAME_MAX_LENGTH:
            errors.append(FieldError(
                field="name",
                message=f"Room name must be at most {ROOM_NAME_MAX_LENGTH} characters long",
            ))
        if description and len(description) > ROOM_DESCRIPTION_MAX_LENGTH:
            errors.append(FieldError(
                field="description",
                message=f"Description must be at most {ROOM_DESCRIPTION_MAX_LENGTH} characters long",
            ))
        if errors:
            return OperationResult.fail("validation", errors=errors)

        if await self._users.find_one({"_id": owner_id}, {"_id": 1}) is None:
            return OperationResult.fail("not_found", field="userId", message="User not found")

        now = datetime.now(timezone.utc)
        doc = {
            "_id": str(uuid.uuid4()),
            "name": name,
            "description": description,
            "is_active": True,
            "owner_id": owner_id,
            "created_at": now,
            "updated_at": now,
        }
        await self._collection.insert_one(doc)
        logger.info("房间已创建 | room=%s | owner=%s", doc["_id"], owner_id)
        return OperationResult[Room].ok(Room.from_document(doc))

    async def get(self, room_id: str) -> Room | None:
        doc = await self._collection.find_one({"_id": room_id})
        return Room.from_document(doc) if doc else None

    async def get_active(self, room_id: str) -> Room | None:
        doc = await self._collection.find_one({"_id": room_id, "is_active": True})
        return Room.from_document(doc) if doc else None

    async def list_active(self, owner_id: str) -> list[RoomSummary]:
        """列出 owner 的所有活跃房间（最近更新在前），附带消息数量。"""
        cursor = (
            self._collection
            .find({"owner_id": owner_id, "is_active": True})
            .sort("updated_at", -1)
        )
        docs = await cursor.to_list(length=None)

        summaries: list[RoomSummary] = []
        for doc in docs:
            room = Room.from_document(doc)
            count = await self._messages.count_documents({"room_id": room.id})
            summaries.append(RoomSummary(
                id=room.id,
                name=room.name,
                description=room.description,
                created_at=room.created_at,
                updated_at=room.updated_at,
                message_count=count,
            ))
        return summaries

    async def deactivate(self, room_id: str) -> OperationResult[Room]:
        """逻辑删除房间。"""
        result = await self._collection.update_one(
            {"_id": room_id},
            {"$set": {"is_active": False, "updated_at": datetime.now(timezone.utc)}},
        )
        if result.matched_count == 0:
            return OperationResult.fail("not_found", field="roomId", message="Room not found")
        room = await self.get(room_id)
        logger.info("房间已停用 | room=%s", room_id)
        return OperationResult[Room].ok(room)

    async def touch(self, room_id: str) -> None:
        """刷新房间的 ``updated_at``，让有新消息的房间排在列表前面。"""
        await self._collection.update_one(
            {"_id": room_id},
            {"$set": {"updated_at": datetime.now(timezone.utc)}},
        )

"""
app.db.message_log
~~~~~~~~~~~~~~~~~~

消息日志 —— 封装 MongoDB ``messages`` 集合的追加与查询。

每条消息一个文档（扁平设计），按 ``room_id`` 分区。房间内顺序为
``created_at`` 升序，同一时间戳按 ``seq`` 升序；``seq`` 来自 ``counters``
集合的原子自增，保证严格单调。

保留 AI 身份可能在消息写入时尚不存在，此时 AI 消息以占位作者
``PLACEHOLDER_AGENT_ID`` 写入，待身份创建后由 ``repair_agent_authorship``
一次性改写。
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from app.core.logging import get_logger
from app.schemas.chat import Message, MessageKind

logger = get_logger(__name__)

# 集合名称
_COLLECTION_NAME = "messages"
_COUNTERS_COLLECTION = "counters"
_USERS_COLLECTION = "users"
_SEQ_KEY = "messages"

PLACEHOLDER_AGENT_ID = "ai-assistant"
PLACEHOLDER_AGENT_NAME = "AI Assistant"
UNKNOWN_AUTHOR_NAME = "Unknown User"


def _utcnow() -> datetime:
    # BSON 日期只保留到毫秒
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


class MessageLog:
    """追加式消息日志。

    Attributes:
        db: MongoDB 数据库实例。
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self._collection = db[_COLLECTION_NAME]
        self._counters = db[_COUNTERS_COLLECTION]
        self._users = db[_USERS_COLLECTION]

    async def ensure_indexes(self) -> None:
        """复合索引：按房间分区 + 按时间、序号排序。"""
        await self._collection.create_index(
            [("room_id", 1), ("created_at", 1), ("seq", 1)],
            name="idx_room_time_seq",
        )
        await self._collection.create_index(
            [("type", 1), ("author_id", 1)],
            name="idx_type_author",
        )
        logger.debug("messages 索引已就绪")

    async def _next_seq(self) -> int:
        """原子获取下一个消息序号。"""
        counter = await self._counters.find_one_and_update(
            {"_id": _SEQ_KEY},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return counter["value"]

    async def append(
        self,
        author_id: str | None,
        room_id: str,
        content: str,
        kind: MessageKind,
    ) -> Message:
        """追加一条消息。

        Args:
            author_id: 作者用户 ID；AI 消息传 ``None`` 表示以占位作者写入。
            room_id: 房间 ID。
            content: 消息文本。
            kind: 作者类别。

        Returns:
            已持久化的 ``Message``。
        """
        if author_id is None:
            if kind is not MessageKind.AI:
                raise ValueError("只有 AI 消息允许使用占位作者")
            author_id = PLACEHOLDER_AGENT_ID

        seq = await self._next_seq()
        doc = {
            "_id": str(uuid.uuid4()),
            "content": content,
            "type": kind.value,
            "author_id": author_id,
            "room_id": room_id,
            "created_at": _utcnow(),
            "seq": seq,
        }
        await self._collection.insert_one(doc)
        return Message.from_document(doc)

    async def history(self, room_id: str, limit: int | None = None) -> list[Message]:
        """获取房间消息（按时间正序），并回填作者用户名。

        Args:
            room_id: 房间 ID。
            limit: 只取最近 N 条；``None`` 表示全部。

        Returns:
            消息列表，最早的在前。
        """
        if limit is None:
            cursor = (
                self._collection
                .find({"room_id": room_id})
                .sort([("created_at", 1), ("seq", 1)])
            )
            docs = await cursor.to_list(length=None)
        else:
            # 先按时间倒序取最近 N 条，再反转为正序
            cursor = (
                self._collection
                .find({"room_id": room_id})
                .sort([("created_at", -1), ("seq", -1)])
                .limit(limit)
            )
            docs = await cursor.to_list(length=limit)
            docs.reverse()

        messages = [Message.from_document(doc) for doc in docs]
        await self._annotate_usernames(messages)
        return messages

    async def _annotate_usernames(self, messages: list[Message]) -> None:
        author_ids = {m.author_id for m in messages}
        if not author_ids:
            return
        cursor = self._users.find(
            {"_id": {"$in": list(author_ids)}},
            {"_id": 1, "username": 1},
        )
        names = {doc["_id"]: doc["username"] async for doc in cursor}

        for message in messages:
            name = names.get(message.author_id)
            if name is None:
                name = PLACEHOLDER_AGENT_NAME if message.kind is MessageKind.AI else UNKNOWN_AUTHOR_NAME
            message.username = name

    async def count(self, room_id: str) -> int:
        """获取指定房间的消息总数。"""
        return await self._collection.count_documents({"room_id": room_id})

    async def repair_agent_authorship(self, agent_id: str) -> int:
        """把所有占位作者的 AI 消息改写为真实的 AI 用户 ID。

        尽力而为：失败只记录日志，不向上抛出。

        Returns:
            被改写的消息数；失败时为 0。
        """
        try:
            result = await self._collection.update_many(
                {"type": MessageKind.AI.value, "author_id": PLACEHOLDER_AGENT_ID},
                {"$set": {"author_id": agent_id}},
            )
        except Exception as e:
            logger.warning("AI 消息作者修复失败（已忽略）: %s", e, exc_info=True)
            return 0

        if result.modified_count:
            logger.info("已修复 %d 条占位作者的 AI 消息 -> %s", result.modified_count, agent_id)
        return result.modified_count

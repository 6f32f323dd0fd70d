"""
app.db.user_repository
~~~~~~~~~~~~~~~~~~~~~~

用户持久化仓库 —— 封装 MongoDB ``users`` 集合。

``username`` 建唯一索引，``email`` 建唯一稀疏索引（未提供邮箱的文档不写入该键）。
唯一索引是并发场景下的最终仲裁：插入冲突时抛出 ``DuplicateKeyError``，
由上层决定是"返回已存在的记录"还是"报告冲突"。
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.logging import get_logger
from app.schemas.chat import User

logger = get_logger(__name__)

_COLLECTION_NAME = "users"


class UserRepository:
    """用户仓库。

    Attributes:
        db: MongoDB 数据库实例。
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self._collection = db[_COLLECTION_NAME]

    async def ensure_indexes(self) -> None:
        """创建唯一索引。启动时调用一次，重复调用无副作用。"""
        await self._collection.create_index("username", unique=True, name="uq_username")
        await self._collection.create_index(
            "email", unique=True, sparse=True, name="uq_email",
        )
        logger.debug("users 索引已就绪")

    async def find_by_id(self, user_id: str) -> User | None:
        doc = await self._collection.find_one({"_id": user_id})
        return User.from_document(doc) if doc else None

    async def find_by_username(self, username: str) -> User | None:
        doc = await self._collection.find_one({"username": username})
        return User.from_document(doc) if doc else None

    async def find_by_email(self, email: str) -> User | None:
        doc = await self._collection.find_one({"email": email})
        return User.from_document(doc) if doc else None

    async def insert(
        self,
        username: str,
        email: str | None = None,
        is_agent: bool = False,
    ) -> User:
        """插入一个新用户。

        Args:
            username: 已规范化的用户名。
            email: 已规范化的邮箱（可选）。
            is_agent: 是否为保留的 AI 助手身份。

        Raises:
            pymongo.errors.DuplicateKeyError: 用户名或邮箱已存在。
        """
        now = datetime.now(timezone.utc)
        doc = {
            "_id": str(uuid.uuid4()),
            "username": username,
            "is_active": True,
            "is_agent": is_agent,
            "created_at": now,
            "updated_at": now,
        }
        # 稀疏索引只跳过"缺失该键"的文档，None 仍会参与唯一性判断
        if email:
            doc["email"] = email
        await self._collection.insert_one(doc)
        return User.from_document(doc)

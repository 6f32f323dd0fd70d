"""
app.db.__init__
~~~~~~~~~~~~~~~

MongoDB 异步连接管理。

使用 ``motor`` 提供的 ``AsyncIOMotorClient``。``MongoStore`` 由应用生命周期
显式创建并注入给各个仓库：启动时调用 ``connect()``，关闭时调用 ``close()``，
不存在模块级的全局连接。
"""
from __future__ import annotations

from urllib.parse import urlparse, urlunparse

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.logging import get_logger

logger = get_logger(__name__)


def _mask_uri(uri: str) -> str:
    """将 MongoDB URI 中的密码替换为 ``***``，防止日志泄漏凭证。"""
    parsed = urlparse(uri)
    if parsed.password:
        masked = parsed._replace(
            netloc=f"{parsed.username}:***@{parsed.hostname}"
            + (f":{parsed.port}" if parsed.port else ""),
        )
        return urlunparse(masked)
    return uri


class MongoStore:
    """数据库句柄，生命周期归属进程的启动 / 关闭。

    Attributes:
        uri: MongoDB 连接串。
        db_name: 默认数据库名称。
    """

    def __init__(self, uri: str, db_name: str) -> None:
        self.uri = uri
        self.db_name = db_name
        self._client: AsyncIOMotorClient | None = None

    async def connect(self) -> None:
        """初始化连接池并 ping 目标数据库。应在 lifespan startup 中调用。"""
        self._client = AsyncIOMotorClient(self.uri, tz_aware=True)

        # 验证连接 + 认证：对目标数据库执行 ping（需要认证才能通过）
        try:
            await self._client[self.db_name].command("ping")
            logger.info(
                "MongoDB 已连接 | uri=%s | db=%s",
                _mask_uri(self.uri),
                self.db_name,
            )
        except Exception as e:
            logger.error("MongoDB 连接失败: %s", e, exc_info=True)
            raise

    async def close(self) -> None:
        """关闭连接池。应在 lifespan shutdown 中调用。"""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("MongoDB 连接已关闭")

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """获取默认数据库实例。

        Raises:
            RuntimeError: 如果在 ``connect()`` 之前调用。
        """
        if self._client is None:
            raise RuntimeError(
                "MongoDB 尚未初始化，请先调用 connect()",
            )
        return self._client[self.db_name]

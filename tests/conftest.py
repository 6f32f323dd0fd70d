"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用 mongomock-motor 提供内存数据库，mock 掉所有外部
API（Gemini、OpenAI、TMDB），使单元测试可在无网络、无 MongoDB 的环境下快速运行。
"""
from __future__ import annotations

import os
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
# 显式置空凭证，避免本地 .env 中的真实 Key 被测试读到
os.environ["ENVIRONMENT"] = "test"
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["TMDB_ACCESS_TOKEN"] = ""
os.environ["AI_REPLY_DELAY_SECONDS"] = "0"

from fastapi import WebSocket  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

from app.db.message_log import MessageLog  # noqa: E402
from app.db.room_store import RoomStore  # noqa: E402
from app.db.user_repository import UserRepository  # noqa: E402
from app.llm.base import RecommendationProvider  # noqa: E402
from app.services.identity import IdentityResolver  # noqa: E402


# ── 数据库 ────────────────────────────────────────────────────────────


@pytest_asyncio.fixture()
async def db() -> Any:
    """每个测试一个独立的内存数据库。"""
    client = AsyncMongoMockClient()
    return client["movie_chat_test"]


@pytest_asyncio.fixture()
async def users(db: Any) -> UserRepository:
    repo = UserRepository(db)
    await repo.ensure_indexes()
    return repo


@pytest_asyncio.fixture()
async def rooms(db: Any) -> RoomStore:
    store = RoomStore(db)
    await store.ensure_indexes()
    return store


@pytest_asyncio.fixture()
async def messages(db: Any) -> MessageLog:
    log = MessageLog(db)
    await log.ensure_indexes()
    return log


@pytest.fixture()
def identity(users: UserRepository, messages: MessageLog) -> IdentityResolver:
    return IdentityResolver(users, messages, agent_username="ai-assistant")


# ── Provider / WebSocket Mock ─────────────────────────────────────────


class FakeProvider(RecommendationProvider):
    """可控的推荐 Provider：固定回复或抛出异常，并记录调用参数。"""

    def __init__(
        self,
        name: str = "fake",
        reply: str = "Try **Alien (1979)**",
        configured: bool = True,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.reply = reply
        self.configured = configured
        self.error = error
        self.calls: list[tuple[str, list[Any]]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def generate(self, user_message: str, history: Any) -> str:
        self.calls.append((user_message, list(history)))
        if self.error is not None:
            raise self.error
        return self.reply


def make_websocket() -> AsyncMock:
    """返回一个 mock 的 WebSocket，``send_json`` 的调用记录即推送给客户端的事件。"""
    return AsyncMock(spec=WebSocket)


def sent_events(websocket: AsyncMock) -> list[tuple[str, Any]]:
    """提取 mock WebSocket 收到的 ``(event, data)`` 列表。"""
    return [
        (call.args[0]["event"], call.args[0]["data"])
        for call in websocket.send_json.await_args_list
    ]

"""
tests.test_message_log
~~~~~~~~~~~~~~~~~~~~~~

MessageLog 消息日志单元测试：顺序、用户名回填、占位作者修复。
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo.errors import PyMongoError

from app.db.message_log import PLACEHOLDER_AGENT_ID, MessageLog
from app.schemas.chat import MessageKind

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestAppend:
    """测试消息追加。"""

    @pytest.mark.asyncio
    async def test_append_human(self, messages: MessageLog) -> None:
        message = await messages.append("u1", "room-1", "hello", MessageKind.HUMAN)

        assert message.kind is MessageKind.HUMAN
        assert message.author_id == "u1"
        assert message.room_id == "room-1"
        assert await messages.count("room-1") == 1

    @pytest.mark.asyncio
    async def test_seq_strictly_increasing(self, messages: MessageLog) -> None:
        first = await messages.append("u1", "room-1", "a", MessageKind.HUMAN)
        second = await messages.append("u1", "room-2", "b", MessageKind.HUMAN)
        third = await messages.append("u1", "room-1", "c", MessageKind.HUMAN)

        assert first.seq < second.seq < third.seq

    @pytest.mark.asyncio
    async def test_created_at_matches_stored_precision(self, messages: MessageLog) -> None:
        message = await messages.append("u1", "room-1", "hello", MessageKind.HUMAN)

        stored = (await messages.history("room-1"))[0]

        assert message.created_at.microsecond % 1000 == 0
        assert message.to_payload()["createdAt"] == stored.to_payload()["createdAt"]

    @pytest.mark.asyncio
    async def test_ai_without_author_uses_placeholder(self, messages: MessageLog) -> None:
        message = await messages.append(None, "room-1", "reply", MessageKind.AI)

        assert message.author_id == PLACEHOLDER_AGENT_ID

    @pytest.mark.asyncio
    async def test_human_without_author_rejected(self, messages: MessageLog) -> None:
        with pytest.raises(ValueError):
            await messages.append(None, "room-1", "hi", MessageKind.HUMAN)


class TestHistory:
    """测试历史读取。"""

    @pytest.mark.asyncio
    async def test_same_timestamp_keeps_insertion_order(self, messages: MessageLog) -> None:
        """时间戳相同时按追加顺序（seq）排列。"""
        with patch("app.db.message_log._utcnow", return_value=FIXED_NOW):
            for text in ("first", "second", "third"):
                await messages.append("u1", "room-1", text, MessageKind.HUMAN)

        history = await messages.history("room-1")

        assert [m.content for m in history] == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_oldest_first_by_timestamp(self, messages: MessageLog) -> None:
        with patch("app.db.message_log._utcnow", return_value=FIXED_NOW):
            await messages.append("u1", "room-1", "later", MessageKind.HUMAN)
        with patch("app.db.message_log._utcnow", return_value=FIXED_NOW - timedelta(minutes=5)):
            await messages.append("u1", "room-1", "earlier", MessageKind.HUMAN)

        history = await messages.history("room-1")

        assert [m.content for m in history] == ["earlier", "later"]

    @pytest.mark.asyncio
    async def test_limit_returns_most_recent_oldest_first(self, messages: MessageLog) -> None:
        for i in range(5):
            with patch("app.db.message_log._utcnow", return_value=FIXED_NOW + timedelta(seconds=i)):
                await messages.append("u1", "room-1", f"m{i}", MessageKind.HUMAN)

        history = await messages.history("room-1", limit=2)

        assert [m.content for m in history] == ["m3", "m4"]

    @pytest.mark.asyncio
    async def test_rooms_are_isolated(self, messages: MessageLog) -> None:
        await messages.append("u1", "room-1", "a", MessageKind.HUMAN)
        await messages.append("u1", "room-2", "b", MessageKind.HUMAN)

        assert [m.content for m in await messages.history("room-2")] == ["b"]

    @pytest.mark.asyncio
    async def test_usernames_annotated(self, messages: MessageLog, identity) -> None:
        alice = (await identity.ensure_user("alice")).data
        await messages.append(alice.id, "room-1", "hi", MessageKind.HUMAN)
        await messages.append(None, "room-1", "hello!", MessageKind.AI)
        await messages.append("ghost", "room-1", "boo", MessageKind.HUMAN)

        history = await messages.history("room-1")
        payloads = [m.to_payload() for m in history]

        assert [p["username"] for p in payloads] == ["alice", "AI Assistant", "Unknown User"]
        assert payloads[0]["type"] == "human"
        assert payloads[1]["type"] == "ai"


class TestRepairAgentAuthorship:
    """测试占位作者修复。"""

    @pytest.mark.asyncio
    async def test_rewrites_placeholder_ai_messages(self, messages: MessageLog) -> None:
        await messages.append(None, "room-1", "r1", MessageKind.AI)
        await messages.append(None, "room-2", "r2", MessageKind.AI)
        await messages.append("u1", "room-1", "hi", MessageKind.HUMAN)

        repaired = await messages.repair_agent_authorship("agent-1")

        assert repaired == 2
        authors = {m.author_id for m in await messages.history("room-1") if m.kind is MessageKind.AI}
        assert authors == {"agent-1"}

    @pytest.mark.asyncio
    async def test_idempotent(self, messages: MessageLog) -> None:
        await messages.append(None, "room-1", "r1", MessageKind.AI)

        assert await messages.repair_agent_authorship("agent-1") == 1
        assert await messages.repair_agent_authorship("agent-1") == 0

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self) -> None:
        db = MagicMock()
        collection = MagicMock()
        collection.update_many = AsyncMock(side_effect=PyMongoError("down"))
        db.__getitem__.return_value = collection

        assert await MessageLog(db).repair_agent_authorship("agent-1") == 0

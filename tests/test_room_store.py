"""
tests.test_room_store
~~~~~~~~~~~~~~~~~~~~~

RoomStore 房间仓库单元测试。
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.db.message_log import MessageLog
from app.db.room_store import RoomStore
from app.schemas.chat import MessageKind
from app.services.identity import IdentityResolver


class TestCreate:
    """测试房间创建。"""

    @pytest.mark.asyncio
    async def test_create_room(self, rooms: RoomStore, identity: IdentityResolver) -> None:
        owner = (await identity.register_user("owner")).data
        result = await rooms.create(owner.id, "  Sci-Fi Night ", "space movies")

        assert result.success
        assert result.data.name == "Sci-Fi Night"
        assert result.data.owner_id == owner.id
        assert result.data.is_active is True

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, rooms: RoomStore, identity: IdentityResolver) -> None:
        owner = (await identity.register_user("owner")).data
        result = await rooms.create(owner.id, "   ")

        assert result.error_kind == "validation"
        assert result.errors[0].field == "name"

    @pytest.mark.asyncio
    async def test_long_description_rejected(
        self, rooms: RoomStore, identity: IdentityResolver,
    ) -> None:
        owner = (await identity.register_user("owner")).data
        result = await rooms.create(owner.id, "Room", "x" * 1001)

        assert result.error_kind == "validation"
        assert result.errors[0].field == "description"

    @pytest.mark.asyncio
    async def test_unknown_owner(self, rooms: RoomStore) -> None:
        result = await rooms.create("nobody", "Room")

        assert result.error_kind == "not_found"
        assert result.first_message == "User not found"


class TestListActive:
    """测试房间列表。"""

    @pytest.mark.asyncio
    async def test_most_recently_updated_first_with_counts(
        self, rooms: RoomStore, messages: MessageLog, identity: IdentityResolver, db,
    ) -> None:
        owner = (await identity.register_user("owner")).data
        older = (await rooms.create(owner.id, "Older")).data
        newer = (await rooms.create(owner.id, "Newer")).data

        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await db["rooms"].update_one({"_id": older.id}, {"$set": {"updated_at": base}})
        await db["rooms"].update_one(
            {"_id": newer.id}, {"$set": {"updated_at": base + timedelta(hours=1)}},
        )
        await messages.append(owner.id, older.id, "hi", MessageKind.HUMAN)
        await messages.append(owner.id, older.id, "again", MessageKind.HUMAN)

        summaries = await rooms.list_active(owner.id)

        assert [s.name for s in summaries] == ["Newer", "Older"]
        assert [s.message_count for s in summaries] == [0, 2]
        dumped = summaries[1].model_dump(by_alias=True)
        assert dumped["messageCount"] == 2
        assert "createdAt" in dumped

    @pytest.mark.asyncio
    async def test_deactivated_rooms_hidden(
        self, rooms: RoomStore, identity: IdentityResolver,
    ) -> None:
        owner = (await identity.register_user("owner")).data
        room = (await rooms.create(owner.id, "Gone")).data

        result = await rooms.deactivate(room.id)

        assert result.success
        assert result.data.is_active is False
        assert await rooms.list_active(owner.id) == []
        assert await rooms.get_active(room.id) is None
        assert await rooms.get(room.id) is not None

    @pytest.mark.asyncio
    async def test_deactivate_unknown_room(self, rooms: RoomStore) -> None:
        result = await rooms.deactivate("missing")

        assert result.error_kind == "not_found"

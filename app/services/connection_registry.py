"""
app.services.connection_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 连接注册表 —— 维护每条连接的状态记录与房间成员索引。

两张表:
  - ``connection_id -> ConnectionInfo``：连接本身（socket、状态、已加入的房间）
  - ``room_id -> set[connection_id]``：房间成员索引，广播时按此查找接收方

二者只是进程内缓存，不做持久化。
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fastapi import WebSocket

from app.core.logging import get_logger

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    """连接状态机：connected → room_joined → disconnected。"""

    CONNECTED = "connected"
    ROOM_JOINED = "room_joined"
    DISCONNECTED = "disconnected"


@dataclass
class ConnectionInfo:
    """单条连接的状态记录。"""

    connection_id: str
    websocket: WebSocket
    state: ConnectionState = ConnectionState.CONNECTED
    user_id: str | None = None
    rooms: set[str] = field(default_factory=set)


class ConnectionRegistry:
    """连接注册表。

    Attributes:
        connections: 当前在线的连接记录。
        members: 房间成员索引。
    """

    def __init__(self) -> None:
        self.connections: dict[str, ConnectionInfo] = {}
        self.members: dict[str, set[str]] = {}

    def register(self, connection_id: str, websocket: WebSocket) -> ConnectionInfo:
        info = ConnectionInfo(connection_id=connection_id, websocket=websocket)
        self.connections[connection_id] = info
        logger.info("连接已建立 | 当前在线: %d", len(self.connections))
        return info

    def get(self, connection_id: str) -> ConnectionInfo | None:
        return self.connections.get(connection_id)

    def join(self, connection_id: str, room_id: str) -> None:
        """记录连接加入房间。"""
        info = self.connections.get(connection_id)
        if info is None:
            return
        info.rooms.add(room_id)
        info.state = ConnectionState.ROOM_JOINED
        self.members.setdefault(room_id, set()).add(connection_id)

    def leave(self, connection_id: str, room_id: str) -> None:
        """移除连接在某房间的成员记录。"""
        members = self.members.get(room_id)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self.members[room_id]

        info = self.connections.get(connection_id)
        if info is not None:
            info.rooms.discard(room_id)
            if not info.rooms:
                info.state = ConnectionState.CONNECTED

    def unregister(self, connection_id: str) -> None:
        """断开连接：清除该连接的全部成员记录。"""
        info = self.connections.pop(connection_id, None)
        if info is None:
            return
        for room_id in list(info.rooms):
            members = self.members.get(room_id)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self.members[room_id]
        info.rooms.clear()
        info.state = ConnectionState.DISCONNECTED
        logger.info("连接已断开 | 当前在线: %d", len(self.connections))

    def room_members(self, room_id: str) -> list[str]:
        """房间成员快照。"""
        return list(self.members.get(room_id, ()))

    def online_count(self, room_id: str | None = None) -> int:
        if room_id is None:
            return len(self.connections)
        return len(self.members.get(room_id, ()))

    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        """向单条连接发送事件。发送失败时从注册表移除该连接。

        Returns:
            是否发送成功。
        """
        info = self.connections.get(connection_id)
        if info is None:
            return False
        try:
            await info.websocket.send_json({"event": event, "data": data})
        except Exception as e:
            logger.warning("发送失败，移除断开的连接 | conn=%s | %s", connection_id, e)
            self.unregister(connection_id)
            return False
        return True

    async def broadcast(self, room_id: str, event: str, data: Any) -> int:
        """向房间成员广播事件（以发送时刻的成员快照为准）。

        Returns:
            成功送达的连接数。
        """
        targets = self.room_members(room_id)
        results = await asyncio.gather(*(self.send(cid, event, data) for cid in targets))
        return sum(1 for ok in results if ok)

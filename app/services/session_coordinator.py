"""
app.services.session_coordinator
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

实时会话协调器 —— 处理 WebSocket 客户端事件，串联身份、房间、消息日志与推荐流水线。

事件流（``send_message``）:
  1. 解析身份，持久化用户消息，立即广播 ``new_message``
  2. 后台任务：加载房间历史 → 推荐流水线生成回复
  3. 确保保留 AI 身份存在（失败时以占位作者写入），持久化 AI 消息
  4. 等待 ``AI_REPLY_DELAY_SECONDS`` 后广播 ``ai_message``

每个处理器的异常都被捕获并只通知发起连接，不影响其他连接。
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError

from app.core.config import settings
from app.core.logging import get_logger
from app.db.message_log import PLACEHOLDER_AGENT_NAME, MessageLog
from app.db.room_store import RoomStore
from app.schemas.chat import (
    ClientEnvelope,
    CreateRoomRequest,
    GetMessagesRequest,
    GetRoomsRequest,
    JoinRoomRequest,
    LeaveRoomRequest,
    MessageKind,
    SendMessageRequest,
    User,
)
from app.services.connection_registry import ConnectionRegistry
from app.services.identity import IdentityResolver
from app.services.recommendation import RecommendationPipeline

logger = get_logger(__name__)

_Handler = Callable[[str, Any], Awaitable[None]]


class SessionCoordinator:
    """WebSocket 会话协调器。

    Attributes:
        identity: 身份解析器。
        rooms: 房间仓库。
        messages: 消息日志。
        pipeline: 推荐流水线。
        registry: 连接注册表（连接状态 + 房间成员索引）。
        reply_delay: AI 回复广播前的延迟秒数。
    """

    def __init__(
        self,
        identity: IdentityResolver,
        rooms: RoomStore,
        messages: MessageLog,
        pipeline: RecommendationPipeline,
        registry: ConnectionRegistry | None = None,
        reply_delay: float | None = None,
    ) -> None:
        self.identity = identity
        self.rooms = rooms
        self.messages = messages
        self.pipeline = pipeline
        self.registry = registry or ConnectionRegistry()
        self.reply_delay: float = (
            settings.AI_REPLY_DELAY_SECONDS if reply_delay is None else reply_delay
        )
        self._tasks: set[asyncio.Task] = set()

        # event -> (载荷模型, 处理器, 失败时的通用提示)
        self._handlers: dict[str, tuple[type[BaseModel], _Handler, str]] = {
            "join_room": (JoinRoomRequest, self.join_room, "Failed to join room"),
            "leave_room": (LeaveRoomRequest, self.leave_room, "Failed to leave room"),
            "send_message": (SendMessageRequest, self.send_message, "Failed to send message"),
            "create_room": (CreateRoomRequest, self.create_room, "Failed to create room"),
            "get_rooms": (GetRoomsRequest, self.get_rooms, "Failed to get rooms"),
            "get_messages": (GetMessagesRequest, self.get_messages, "Failed to get messages"),
        }

    # ── 连接生命周期 ──────────────────────────────────────────────────

    def connect(self, connection_id: str, websocket: WebSocket) -> None:
        self.registry.register(connection_id, websocket)

    def disconnect(self, connection_id: str) -> None:
        """断开连接：移除该连接的全部房间成员记录。"""
        self.registry.unregister(connection_id)

    async def emit(self, connection_id: str, event: str, data: Any) -> None:
        await self.registry.send(connection_id, event, data)

    async def emit_error(self, connection_id: str, message: str) -> None:
        await self.registry.send(connection_id, "error", {"message": message})

    # ── 事件分发 ──────────────────────────────────────────────────────

    async def handle_text(self, connection_id: str, raw: str) -> None:
        """解析一条原始文本帧并分发。"""
        try:
            envelope = ClientEnvelope.model_validate_json(raw)
        except ValidationError:
            await self.emit_error(connection_id, "Invalid message format")
            return
        await self.dispatch(connection_id, envelope.event, envelope.data)

    async def dispatch(self, connection_id: str, event: str, data: dict[str, Any]) -> None:
        """把事件交给对应处理器，处理器的任何异常只通知发起连接。"""
        entry = self._handlers.get(event)
        if entry is None:
            await self.emit_error(connection_id, f"Unknown event: {event}")
            return

        model, handler, failure_notice = entry
        try:
            payload = model.model_validate(data)
        except ValidationError as e:
            logger.info("事件载荷非法 | event=%s | %s", event, e.errors()[0].get("msg"))
            await self.emit_error(connection_id, f"Invalid payload for {event}")
            return

        try:
            await handler(connection_id, payload)
        except Exception as e:
            logger.error("事件处理失败 | event=%s | %s", event, e, exc_info=True)
            await self.emit_error(connection_id, failure_notice)

    # ── 事件处理器 ────────────────────────────────────────────────────

    async def _resolve_user(self, connection_id: str, client_id: str) -> User | None:
        result = await self.identity.resolve_client(client_id)
        if not result.success:
            await self.emit_error(connection_id, result.first_message)
            return None
        info = self.registry.get(connection_id)
        if info is not None:
            info.user_id = result.data.id
        return result.data

    async def join_room(self, connection_id: str, payload: JoinRoomRequest) -> None:
        room = await self.rooms.get_active(payload.room_id)
        if room is None:
            await self.emit_error(connection_id, "Room not found")
            return

        if await self._resolve_user(connection_id, payload.user_id) is None:
            return
        self.registry.join(connection_id, room.id)

        await self.emit(connection_id, "room_joined", {"roomId": room.id})
        history = await self.messages.history(room.id)
        await self.emit(connection_id, "messages_list", [m.to_payload() for m in history])
        logger.info("加入房间 | room=%s | online=%d", room.id, self.registry.online_count(room.id))

    async def leave_room(self, connection_id: str, payload: LeaveRoomRequest) -> None:
        self.registry.leave(connection_id, payload.room_id)
        await self.emit(connection_id, "room_left", {"roomId": payload.room_id})

    async def send_message(self, connection_id: str, payload: SendMessageRequest) -> None:
        room = await self.rooms.get_active(payload.room_id)
        if room is None:
            await self.emit_error(connection_id, "Room not found")
            return
        user = await self._resolve_user(connection_id, payload.user_id)
        if user is None:
            return

        message = await self.messages.append(user.id, room.id, payload.content, MessageKind.HUMAN)
        await self.rooms.touch(room.id)
        await self.registry.broadcast(room.id, "new_message", message.to_payload(user.username))

        task = asyncio.create_task(
            self._reply(connection_id, room.id, payload.content, message.id),
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _reply(
        self, connection_id: str, room_id: str, content: str, human_message_id: str,
    ) -> None:
        """后台生成并广播 AI 回复。"""
        try:
            history = [
                m for m in await self.messages.history(room_id)
                if m.id != human_message_id
            ]
            reply = await self.pipeline.respond(content, history)

            try:
                agent: User | None = await self.identity.ensure_reserved_agent()
            except Exception as e:
                logger.warning("保留 AI 身份不可用，使用占位作者: %s", e)
                agent = None

            ai_message = await self.messages.append(
                agent.id if agent else None, room_id, reply, MessageKind.AI,
            )
            await self.rooms.touch(room_id)

            if self.reply_delay > 0:
                await asyncio.sleep(self.reply_delay)
            await self.registry.broadcast(
                room_id,
                "ai_message",
                ai_message.to_payload(agent.username if agent else PLACEHOLDER_AGENT_NAME),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("AI 回复失败 | room=%s | %s", room_id, e, exc_info=True)
            await self.emit_error(connection_id, "Failed to send message")

    async def create_room(self, connection_id: str, payload: CreateRoomRequest) -> None:
        user = await self._resolve_user(connection_id, payload.user_id)
        if user is None:
            return
        result = await self.rooms.create(user.id, payload.name, payload.description)
        if not result.success:
            await self.emit_error(connection_id, result.first_message)
            return
        room = result.data
        await self.emit(connection_id, "room_created", {
            "id": room.id,
            "name": room.name,
            "description": room.description,
        })

    async def get_rooms(self, connection_id: str, payload: GetRoomsRequest) -> None:
        user = await self._resolve_user(connection_id, payload.user_id)
        if user is None:
            return
        summaries = await self.rooms.list_active(user.id)
        await self.emit(
            connection_id,
            "rooms_list",
            [s.model_dump(mode="json", by_alias=True) for s in summaries],
        )

    async def get_messages(self, connection_id: str, payload: GetMessagesRequest) -> None:
        history = await self.messages.history(payload.room_id)
        await self.emit(connection_id, "messages_list", [m.to_payload() for m in history])

    # ── 后台任务 ──────────────────────────────────────────────────────

    async def wait_idle(self) -> None:
        """等待所有进行中的 AI 回复任务完成。"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """取消所有进行中的 AI 回复任务（进程关闭时调用）。"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("已取消 %d 个进行中的 AI 回复任务", len(tasks))

"""
app.api.deps
~~~~~~~~~~~~

FastAPI 依赖项 —— 从 ``app.state`` 取出 lifespan 中装配好的服务实例。
"""
from fastapi import Request, WebSocket

from app.db.message_log import MessageLog
from app.db.room_store import RoomStore
from app.services.identity import IdentityResolver
from app.services.recommendation import RecommendationPipeline
from app.services.session_coordinator import SessionCoordinator


def get_identity(request: Request) -> IdentityResolver:
    return request.app.state.identity


def get_room_store(request: Request) -> RoomStore:
    return request.app.state.rooms


def get_message_log(request: Request) -> MessageLog:
    return request.app.state.messages


def get_pipeline(request: Request) -> RecommendationPipeline:
    return request.app.state.pipeline


def get_coordinator(websocket: WebSocket) -> SessionCoordinator:
    return websocket.app.state.coordinator

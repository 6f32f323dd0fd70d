"""
app.api.ws
~~~~~~~~~~

WebSocket 实时聊天接口。

每条连接分配一个 ``ws-xxxxxxxx`` 形式的连接 ID，写入日志上下文后，
收到的每一帧都交给 ``SessionCoordinator`` 分发。

消息协议（JSON 文本帧）:
  - 客户端 → 服务端: ``{"event": "send_message", "data": {...}}``
  - 服务端 → 客户端: ``{"event": "new_message", "data": {...}}``
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.api.deps import get_coordinator
from app.core.logging import get_logger, request_id_ctx_var
from app.services.session_coordinator import SessionCoordinator

logger = get_logger(__name__)

router: APIRouter = APIRouter()


def new_connection_id() -> str:
    return f"ws-{uuid.uuid4().hex[:8]}"


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> None:
    """WebSocket 聊天端点：一条连接可加入多个房间。"""
    connection_id = new_connection_id()
    token = request_id_ctx_var.set(connection_id)
    await websocket.accept()
    coordinator.connect(connection_id, websocket)

    try:
        while True:
            raw: str = await websocket.receive_text()
            await coordinator.handle_text(connection_id, raw)
    except WebSocketDisconnect:
        logger.debug("客户端主动断开")
    except Exception as e:
        logger.error("WebSocket 异常: %s", e, exc_info=True)
    finally:
        coordinator.disconnect(connection_id)
        request_id_ctx_var.reset(token)

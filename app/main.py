"""
app.main
~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。

生命周期中完成全部装配：数据库连接 → 仓库与索引 → 身份解析 / 推荐流水线 →
会话协调器，最终挂到 ``app.state`` 上供路由依赖项读取。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from app.api import rooms, users, ws
from app.api.deps import get_identity, get_pipeline
from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.db import MongoStore
from app.db.message_log import MessageLog
from app.db.room_store import RoomStore
from app.db.user_repository import UserRepository
from app.llm.gemini_provider import GeminiProvider
from app.llm.openai_provider import OpenAIProvider
from app.schemas.api_response import ApiResponse
from app.schemas.chat import User
from app.services.identity import IdentityResolver
from app.services.recommendation import RecommendationPipeline
from app.services.session_coordinator import SessionCoordinator

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


def build_pipeline() -> RecommendationPipeline:
    """按优先级装配推荐 Provider：Gemini + TMDB → OpenAI → 静态兜底。"""
    return RecommendationPipeline([GeminiProvider(), OpenAIProvider()])


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子，仅在 worker 启动/关闭时各执行一次。"""
    # ── 启动 ──
    store = MongoStore(settings.MONGO_URI, settings.MONGO_DB_NAME)
    await store.connect()
    db = store.database

    user_repo = UserRepository(db)
    room_store = RoomStore(db)
    message_log = MessageLog(db)
    for repo in (user_repo, room_store, message_log):
        await repo.ensure_indexes()

    identity = IdentityResolver(user_repo, message_log, settings.AI_AGENT_USERNAME)
    pipeline = build_pipeline()
    coordinator = SessionCoordinator(identity, room_store, message_log, pipeline)

    app.state.store = store
    app.state.identity = identity
    app.state.rooms = room_store
    app.state.messages = message_log
    app.state.pipeline = pipeline
    app.state.coordinator = coordinator

    try:
        await identity.ensure_reserved_agent()
    except Exception as e:
        logger.warning("启动时保留 AI 身份初始化失败，将在首次回复时重试: %s", e)

    logger.info(
        "🚀 应用已启动 | env=%s | debug=%s | log_level=%s | ai=%s",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
        pipeline.status()["activeProvider"],
    )
    yield
    # ── 关闭 ──
    await coordinator.aclose()
    await store.close()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="实时电影推荐聊天后端 API",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

# ── CORS 中间件 ───────────────────────────────────────────────────────
if settings.allow_cors_all_origins:
    # dev / test 环境：允许所有来源，方便本地调试
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    # prod 环境：仅允许前端来源
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(users.router, prefix="/api", tags=["Users"])
app.include_router(rooms.router, prefix="/api", tags=["Rooms"])
app.include_router(ws.router, tags=["WebSocket Chat"])


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "服务器内部错误"
    response = ApiResponse.fail(msg=detail, code=500, data=None)
    return JSONResponse(
        status_code=500,
        content=response.model_dump(),
    )


@app.get("/api/ai-status", tags=["System"])
async def ai_status(
    pipeline: RecommendationPipeline = Depends(get_pipeline),
) -> ApiResponse[dict]:
    """各推荐 Provider 的配置情况以及当前生效的 Provider。"""
    return ApiResponse.ok(data=pipeline.status())


@app.get("/api/ai-assistant-status", tags=["System"])
async def ai_assistant_status(
    identity: IdentityResolver = Depends(get_identity),
) -> ApiResponse[User]:
    """确保保留 AI 助手用户存在并返回其记录。"""
    try:
        agent = await identity.ensure_reserved_agent()
    except PyMongoError as e:
        logger.error("保留 AI 身份检查失败: %s", e, exc_info=True)
        return ApiResponse.fail(msg="Failed to check AI assistant status", code=500)
    return ApiResponse.ok(data=agent)


@app.get("/health", tags=["System"])
async def health_check() -> JSONResponse:
    """验证服务是否正常运行。"""
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "debug": settings.debug,
            "log_level": settings.effective_log_level,
            "message": "电影推荐聊天服务已就绪！🚀",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )

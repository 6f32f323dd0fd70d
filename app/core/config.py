"""
app.core.config
~~~~~~~~~~~~~~~

集中式配置管理，基于 pydantic-settings 自动从 ``.env`` 文件加载。

支持多环境配置（dev / test / prod），加载顺序为:
  1. 环境变量（最高优先级）
  2. ``.env.{ENVIRONMENT}`` 环境专属文件
  3. ``.env`` 基础文件
  4. 字段默认值（最低优先级）

所有第三方凭证（Gemini / OpenAI / TMDB）均为可选：缺失时对应的推荐 Provider
被视为"未配置"并在推荐流水线中被跳过。
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 读取当前环境标识（在 Settings 类定义之前，用于决定加载哪个 .env 文件）
_CURRENT_ENV: str = os.getenv("ENVIRONMENT", "dev")


class Settings(BaseSettings):
    """全局配置对象，字段值按如下优先级加载：环境变量 > .env.{env} > .env > 默认值。"""

    # ── 基础 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="Movie Chat Backend", description="项目名称")
    VERSION: str = Field(default="0.1.0", description="版本号")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(
        default="dev",
        description="运行环境：dev / test / prod",
    )

    # ── MongoDB ───────────────────────────────────────────────────────
    MONGO_URI: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB 连接串",
    )
    MONGO_DB_NAME: str = Field(default="movie_chat", description="数据库名称")

    # ── API Keys（均可选，缺失即视为对应 Provider 未配置）──────────────
    GEMINI_API_KEY: str = Field(default="", description="Google Gemini API Key")
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API Key")
    TMDB_ACCESS_TOKEN: str = Field(default="", description="TMDB v4 读访问令牌")

    # ── LLM ───────────────────────────────────────────────────────────
    GEMINI_MODEL: str = Field(
        default="gemini-2.5-flash",
        description="主 Provider 使用的 Gemini 模型",
    )
    OPENAI_MODEL: str = Field(
        default="gpt-4o-mini",
        description="备用 Provider 使用的 OpenAI 模型",
    )
    LLM_TEMPERATURE: float = Field(default=0.7, description="生成温度")
    LLM_MAX_TOKENS: int = Field(default=1000, description="单次回复最大 token 数")

    # ── 电影元数据 ────────────────────────────────────────────────────
    TMDB_BASE_URL: str = Field(
        default="https://api.themoviedb.org/3",
        description="TMDB API 根地址",
    )
    TMDB_MAX_DETAILS: int = Field(
        default=10,
        ge=1,
        description="单次推荐最多拉取详情的候选电影数",
    )

    # ── 推荐流水线 ────────────────────────────────────────────────────
    PRIMARY_HISTORY_WINDOW: int = Field(default=6, ge=0, description="主 Provider 携带的历史条数")
    SECONDARY_HISTORY_WINDOW: int = Field(default=10, ge=0, description="备用 Provider 携带的历史条数")
    AI_REPLY_DELAY_SECONDS: float = Field(
        default=1.0,
        ge=0,
        description="AI 回复广播前的固定延迟（仅用于节奏感）",
    )
    AI_AGENT_USERNAME: str = Field(
        default="ai-assistant",
        description="保留的 AI 助手用户名",
    )

    # ── 服务 ──────────────────────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0", description="服务监听地址")
    PORT: int = Field(default=8000, description="服务监听端口")
    LOG_LEVEL: str = Field(default="INFO", description="日志级别（可被环境属性覆盖）")
    FRONTEND_URL: str = Field(
        default="http://localhost:5173",
        description="prod 环境允许的前端来源",
    )

    # ── Pydantic Settings ─────────────────────────────────────────────
    # 先加载 .env.{env} 再加载 .env，前者优先级更高
    model_config = SettingsConfigDict(
        env_file=(f".env.{_CURRENT_ENV}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── 环境判断 ──────────────────────────────────────────────────────

    @property
    def is_prod(self) -> bool:
        """当前是否为生产环境。"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_test(self) -> bool:
        """当前是否为测试环境。"""
        return self.ENVIRONMENT == "test"

    @property
    def is_dev(self) -> bool:
        """当前是否为开发环境。"""
        return self.ENVIRONMENT == "dev"

    # ── 环境差异化行为 ────────────────────────────────────────────────

    @property
    def debug(self) -> bool:
        """是否开启 debug 模式。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def reload(self) -> bool:
        """是否开启热重载。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def effective_log_level(self) -> str:
        """根据环境自动推断日志级别。

        - dev  → INFO
        - test → DEBUG（方便排查测试失败）
        - prod → WARNING（减少噪音）

        如果环境变量中显式设置了 LOG_LEVEL，会覆盖此默认推断。
        """
        env_log = os.getenv("LOG_LEVEL")
        if env_log:
            return env_log
        return {
            "dev": "INFO",
            "test": "DEBUG",
            "prod": "WARNING",
        }.get(self.ENVIRONMENT, "INFO")

    @property
    def allow_cors_all_origins(self) -> bool:
        """是否允许所有 CORS 来源。非 prod 环境允许，方便本地调试。"""
        return not self.is_prod


@lru_cache
def get_settings() -> Settings:
    """获取全局 Settings 单例（带缓存，避免重复解析 .env）。"""
    return Settings()


# 保留向后兼容的全局变量
settings: Settings = get_settings()

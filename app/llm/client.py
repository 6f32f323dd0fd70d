"""
app.llm.client
~~~~~~~~~~~~~~

LLM / 元数据 API 客户端工厂 —— 全局共享的客户端创建入口。

所有需要第三方客户端的模块统一从此处获取，避免凭证读取逻辑分散在各 Provider 中。
测试通过构造函数注入 mock，不会走到这里。
"""
from __future__ import annotations

import httpx
from google import genai
from openai import AsyncOpenAI

from app.core.config import settings


def create_gemini_client(api_key: str | None = None) -> genai.Client:
    """创建 Gemini API 客户端实例。

    Returns:
        已认证的 ``genai.Client``。
    """
    return genai.Client(api_key=api_key or settings.GEMINI_API_KEY)


def create_openai_client(api_key: str | None = None) -> AsyncOpenAI:
    """创建 OpenAI 异步客户端实例。"""
    return AsyncOpenAI(api_key=api_key or settings.OPENAI_API_KEY)


def create_tmdb_http_client(
    access_token: str | None = None,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """创建带 Bearer 认证的 TMDB HTTP 客户端。

    Args:
        access_token: TMDB v4 读访问令牌，默认读取 ``settings.TMDB_ACCESS_TOKEN``。
        base_url: API 根地址，默认读取 ``settings.TMDB_BASE_URL``。
        transport: 可选的传输层（测试时注入 ``httpx.MockTransport``）。
    """
    token = access_token or settings.TMDB_ACCESS_TOKEN
    return httpx.AsyncClient(
        base_url=base_url or settings.TMDB_BASE_URL,
        headers={
            "Authorization": f"Bearer {token}",
            "accept": "application/json",
        },
        timeout=httpx.Timeout(10.0),
        transport=transport,
    )

"""
app.llm.openai_provider
~~~~~~~~~~~~~~~~~~~~~~~

备用推荐 Provider —— OpenAI Chat Completions。

只有指令型系统 Prompt，不做检索：最近 N 条历史按 user / assistant 轮次传入，
最后附上本次用户消息。
"""
from __future__ import annotations

from collections.abc import Sequence

from openai import AsyncOpenAI

from app.core.config import settings
from app.core.logging import get_logger
from app.llm.base import RecommendationProvider
from app.llm.client import create_openai_client
from app.prompts.movie import FALLBACK_SYSTEM_PROMPT
from app.schemas.chat import Message, MessageKind

logger = get_logger(__name__)


class OpenAIProvider(RecommendationProvider):
    name = "openai"

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model_name: str | None = None,
        api_key: str | None = None,
        history_window: int | None = None,
    ) -> None:
        self.model_name: str = model_name or settings.OPENAI_MODEL
        self._api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.history_window: int = (
            settings.SECONDARY_HISTORY_WINDOW if history_window is None else history_window
        )
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key.strip())

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = create_openai_client(self._api_key)
        return self._client

    def build_messages(self, user_message: str, history: Sequence[Message]) -> list[dict[str, str]]:
        recent = history[-self.history_window:] if self.history_window > 0 else []
        messages = [{"role": "system", "content": FALLBACK_SYSTEM_PROMPT}]
        messages.extend(
            {
                "role": "user" if message.kind is MessageKind.HUMAN else "assistant",
                "content": message.content,
            }
            for message in recent
        )
        messages.append({"role": "user", "content": user_message})
        return messages

    async def generate(self, user_message: str, history: Sequence[Message]) -> str:
        logger.debug("OpenAI 请求 | model=%s | history=%d", self.model_name, len(history))
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=self.build_messages(user_message, history),
            max_tokens=settings.LLM_MAX_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
        )
        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

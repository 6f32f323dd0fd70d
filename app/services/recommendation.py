"""
app.services.recommendation
~~~~~~~~~~~~~~~~~~~~~~~~~~~

推荐流水线 —— 按固定优先级依次尝试各 Provider，最终以静态回复兜底。

``respond()`` 永不抛异常，且总是返回非空文本：
  - 未配置的 Provider 直接跳过，不产生调用
  - Provider 抛出的任何异常被记录，然后尝试下一个
  - 空回复视为失败
"""
from __future__ import annotations

from collections.abc import Sequence

from app.core.logging import get_logger
from app.llm.base import RecommendationProvider
from app.prompts.movie import STATIC_FALLBACK_REPLY
from app.schemas.chat import Message

logger = get_logger(__name__)


class RecommendationPipeline:
    """多 Provider 推荐流水线。

    Attributes:
        providers: 按优先级排列的 Provider 列表。
        fallback_reply: 全部失败时返回的固定文本。
    """

    def __init__(
        self,
        providers: Sequence[RecommendationProvider],
        fallback_reply: str = STATIC_FALLBACK_REPLY,
    ) -> None:
        self.providers = list(providers)
        self.fallback_reply = fallback_reply

    async def respond(self, user_message: str, history: Sequence[Message]) -> str:
        """为用户消息生成回复。

        Args:
            user_message: 本次用户消息文本。
            history: 房间历史（最早的在前，不含本次消息）。

        Returns:
            非空的回复文本。
        """
        for provider in self.providers:
            if not provider.is_configured:
                logger.debug("Provider 未配置，跳过 | provider=%s", provider.name)
                continue
            try:
                reply = await provider.generate(user_message, history)
            except Exception as e:
                logger.warning(
                    "Provider 调用失败，尝试下一个 | provider=%s | %s",
                    provider.name, e, exc_info=True,
                )
                continue
            if reply and reply.strip():
                logger.info("推荐已生成 | provider=%s | chars=%d", provider.name, len(reply))
                return reply
            logger.warning("Provider 返回空回复 | provider=%s", provider.name)

        logger.warning("所有 Provider 均不可用，使用静态兜底回复")
        return self.fallback_reply

    def status(self) -> dict[str, object]:
        """各 Provider 的配置情况以及当前生效的 Provider。"""
        configured = {p.name: p.is_configured for p in self.providers}
        active = next((name for name, ok in configured.items() if ok), "static")
        return {
            "providers": configured,
            "activeProvider": active,
            "models": {
                p.name: getattr(p, "model_name", None) for p in self.providers
            },
        }

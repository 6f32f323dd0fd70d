"""
app.llm.base
~~~~~~~~~~~~

推荐 Provider 的统一能力接口。

流水线只依赖 ``RecommendationProvider``：按优先级逐个尝试，任何异常或空回复都
视为该 Provider 失败并转向下一个。
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from app.schemas.chat import Message


class ProviderError(Exception):
    """Provider 无法给出回复（例如检索不到任何候选电影）。"""


class RecommendationProvider(ABC):
    """推荐 Provider 抽象基类。"""

    #: 用于日志和状态接口的名称
    name: str = "provider"

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """凭证是否齐全。未配置的 Provider 会被直接跳过，不产生任何调用。"""

    @abstractmethod
    async def generate(self, user_message: str, history: Sequence[Message]) -> str:
        """根据用户消息和房间历史生成回复。

        Raises:
            ProviderError: 无法给出回复。
            Exception: 任何上游调用异常，由流水线吸收。
        """

"""
app.llm.gemini_provider
~~~~~~~~~~~~~~~~~~~~~~~

主推荐 Provider —— Gemini + TMDB 检索增强。

流程:
  1. 分类调用：让模型以 JSON 返回候选片名与检索条件（``MovieSearchParams``）
  2. 对每个候选片名并发搜索 TMDB，按电影 ID 去重并截断到 ``TMDB_MAX_DETAILS``
  3. 并发获取详情（含导演）
  4. 生成调用：系统指令中嵌入检索到的电影数据，模型只能基于这些数据推荐

检索不到任何电影时抛出 ``ProviderError``，由流水线转向下一个 Provider。
"""
from __future__ import annotations

import asyncio
from collections.abc import Sequence

from google import genai
from google.genai import types
from pydantic import ValidationError

from app.core.config import settings
from app.core.logging import get_logger
from app.llm.base import ProviderError, RecommendationProvider
from app.llm.client import create_gemini_client, create_tmdb_http_client
from app.llm.tmdb import TMDBClient
from app.prompts.movie import (
    CLASSIFY_SYSTEM_PROMPT,
    build_classify_prompt,
    build_grounded_system_prompt,
    build_grounded_user_prompt,
    build_movie_data,
    format_history,
)
from app.schemas.chat import Message
from app.schemas.movie import MovieSearchParams

logger = get_logger(__name__)


class GeminiProvider(RecommendationProvider):
    """基于 Gemini 的检索增强推荐。

    Attributes:
        model_name: 使用的 Gemini 模型名称。
        max_details: 单次推荐最多获取详情的电影数。
        history_window: 生成调用携带的历史条数。
    """

    name = "gemini"

    def __init__(
        self,
        client: genai.Client | None = None,
        tmdb: TMDBClient | None = None,
        model_name: str | None = None,
        api_key: str | None = None,
        tmdb_token: str | None = None,
        max_details: int | None = None,
        history_window: int | None = None,
    ) -> None:
        self.model_name: str = model_name or settings.GEMINI_MODEL
        self._api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self._tmdb_token = settings.TMDB_ACCESS_TOKEN if tmdb_token is None else tmdb_token
        self.max_details: int = max_details or settings.TMDB_MAX_DETAILS
        self.history_window: int = (
            settings.PRIMARY_HISTORY_WINDOW if history_window is None else history_window
        )
        self._client = client
        self._tmdb = tmdb

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key.strip()) and bool(self._tmdb_token.strip())

    @property
    def client(self) -> genai.Client:
        # 懒创建：未配置时不实例化，避免空 Key 触发 SDK 报错
        if self._client is None:
            self._client = create_gemini_client(self._api_key)
        return self._client

    @property
    def tmdb(self) -> TMDBClient:
        if self._tmdb is None:
            self._tmdb = TMDBClient(create_tmdb_http_client(self._tmdb_token))
        return self._tmdb

    async def classify(self, user_message: str) -> MovieSearchParams:
        """分类调用：返回候选片名；模型输出无法解析时返回空结果。"""
        response = await self.client.aio.models.generate_content(
            model=self.model_name,
            contents=build_classify_prompt(user_message),
            config=types.GenerateContentConfig(
                system_instruction=CLASSIFY_SYSTEM_PROMPT,
                temperature=0.0,
                response_mime_type="application/json",
            ),
        )
        try:
            params = MovieSearchParams.model_validate_json(response.text or "")
        except ValidationError as e:
            logger.warning("分类结果无法解析，按无候选处理: %s", e)
            return MovieSearchParams()
        logger.info("候选片名: %s", params.titles)
        return params

    async def retrieve(self, params: MovieSearchParams) -> list[dict]:
        """按候选片名检索 TMDB，返回去重后的电影详情列表。"""
        search_results = await asyncio.gather(*(
            self.tmdb.search_movies(
                title,
                language=params.language,
                year=params.year,
                region=params.region,
            )
            for title in params.titles
        ))

        movie_ids: list[int] = []
        for results in search_results:
            for movie in results:
                movie_id = movie.get("id")
                if movie_id is not None and movie_id not in movie_ids:
                    movie_ids.append(movie_id)
        movie_ids = movie_ids[: self.max_details]

        details = await asyncio.gather(*(
            self.tmdb.get_movie_details(movie_id) for movie_id in movie_ids
        ))
        return [movie for movie in details if movie]

    async def generate(self, user_message: str, history: Sequence[Message]) -> str:
        params = await self.classify(user_message)
        movies = await self.retrieve(params) if params.titles else []
        if not movies:
            raise ProviderError("no movie candidates found")

        response = await self.client.aio.models.generate_content(
            model=self.model_name,
            contents=build_grounded_user_prompt(
                user_message, format_history(history, self.history_window),
            ),
            config=types.GenerateContentConfig(
                system_instruction=build_grounded_system_prompt(build_movie_data(movies)),
                temperature=settings.LLM_TEMPERATURE,
                max_output_tokens=settings.LLM_MAX_TOKENS,
            ),
        )
        return (response.text or "").strip()

"""
app.llm.tmdb
~~~~~~~~~~~~

TMDB 电影元数据客户端（基于 ``httpx.AsyncClient``）。

只负责两类查询：按片名搜索、按 ID 获取详情（附带演职员表）。
单次查询失败只记录日志并返回空结果，由调用方决定是否还有足够的候选。
"""
from __future__ import annotations

from typing import Any

import httpx

from app.core.logging import get_logger
from app.llm.client import create_tmdb_http_client

logger = get_logger(__name__)

DEFAULT_LANGUAGE = "en-US"


class TMDBClient:
    """TMDB API 封装。

    Attributes:
        http: 已配置 ``base_url`` 与 Bearer 认证头的 HTTP 客户端。
    """

    def __init__(self, http: httpx.AsyncClient | None = None) -> None:
        self.http = http or create_tmdb_http_client()

    async def search_movies(
        self,
        query: str,
        *,
        language: str | None = None,
        year: int | None = None,
        region: str | None = None,
        page: int = 1,
    ) -> list[dict[str, Any]]:
        """按片名搜索电影。

        Returns:
            TMDB ``results`` 列表；请求失败时为空列表。
        """
        params: dict[str, Any] = {
            "query": query,
            "include_adult": "false",
            "language": language or DEFAULT_LANGUAGE,
            "page": page,
        }
        if year:
            params["primary_release_year"] = year
            params["year"] = year
        if region:
            params["region"] = region

        try:
            response = await self.http.get("/search/movie", params=params)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("TMDB 搜索失败 | query=%s | %s", query, e)
            return []
        return response.json().get("results") or []

    async def get_movie_details(self, movie_id: int) -> dict[str, Any] | None:
        """获取电影详情，并从演职员表中提取导演姓名写入 ``director`` 字段。

        Returns:
            详情字典；请求失败时为 ``None``。
        """
        try:
            response = await self.http.get(
                f"/movie/{movie_id}",
                params={"language": DEFAULT_LANGUAGE, "append_to_response": "credits"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("TMDB 详情获取失败 | movie=%s | %s", movie_id, e)
            return None

        movie = response.json()
        crew = (movie.get("credits") or {}).get("crew") or []
        movie["director"] = next(
            (person.get("name") for person in crew if person.get("job") == "Director"),
            None,
        )
        return movie

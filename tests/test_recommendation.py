"""
tests.test_recommendation
~~~~~~~~~~~~~~~~~~~~~~~~~

推荐流水线与各 Provider 单元测试 —— 所有外部 API 均被 mock。
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from conftest import FakeProvider

from app.llm.base import ProviderError
from app.llm.gemini_provider import GeminiProvider
from app.llm.openai_provider import OpenAIProvider
from app.llm.tmdb import TMDBClient
from app.prompts.movie import STATIC_FALLBACK_REPLY, build_movie_data, format_history
from app.schemas.chat import Message, MessageKind
from app.services.recommendation import RecommendationPipeline


def make_message(content: str, kind: MessageKind = MessageKind.HUMAN, seq: int = 1) -> Message:
    return Message(
        id=f"m{seq}", content=content, kind=kind, author_id="u1",
        room_id="room-1", created_at=datetime.now(timezone.utc), seq=seq,
    )


# ── 流水线 ────────────────────────────────────────────────────────────

class TestRecommendationPipeline:
    """测试 Provider 回退链。"""

    @pytest.mark.asyncio
    async def test_primary_reply_returned(self) -> None:
        primary = FakeProvider("primary", reply="primary reply")
        secondary = FakeProvider("secondary", reply="secondary reply")

        reply = await RecommendationPipeline([primary, secondary]).respond("hi", [])

        assert reply == "primary reply"
        assert secondary.calls == []

    @pytest.mark.asyncio
    async def test_failure_falls_through(self) -> None:
        primary = FakeProvider("primary", error=RuntimeError("boom"))
        secondary = FakeProvider("secondary", reply="secondary reply")

        reply = await RecommendationPipeline([primary, secondary]).respond("hi", [])

        assert reply == "secondary reply"
        assert len(primary.calls) == 1

    @pytest.mark.asyncio
    async def test_empty_reply_counts_as_failure(self) -> None:
        primary = FakeProvider("primary", reply="   ")
        secondary = FakeProvider("secondary", reply="secondary reply")

        reply = await RecommendationPipeline([primary, secondary]).respond("hi", [])

        assert reply == "secondary reply"

    @pytest.mark.asyncio
    async def test_unconfigured_providers_skipped(self) -> None:
        primary = FakeProvider("primary", configured=False)
        secondary = FakeProvider("secondary", reply="secondary reply")

        reply = await RecommendationPipeline([primary, secondary]).respond("hi", [])

        assert primary.calls == []
        assert reply == "secondary reply"

    @pytest.mark.asyncio
    async def test_all_fail_returns_static_reply(self) -> None:
        providers = [
            FakeProvider("primary", error=ProviderError("no candidates")),
            FakeProvider("secondary", error=TimeoutError()),
        ]

        reply = await RecommendationPipeline(providers).respond("hi", [])

        assert reply == STATIC_FALLBACK_REPLY

    @pytest.mark.asyncio
    async def test_nothing_configured_returns_static_reply(self) -> None:
        pipeline = RecommendationPipeline([
            GeminiProvider(api_key="", tmdb_token=""),
            OpenAIProvider(api_key=""),
        ])

        assert await pipeline.respond("recommend a movie", []) == STATIC_FALLBACK_REPLY

    def test_status(self) -> None:
        pipeline = RecommendationPipeline([
            FakeProvider("gemini", configured=False),
            FakeProvider("openai", configured=True),
        ])

        status = pipeline.status()

        assert status["providers"] == {"gemini": False, "openai": True}
        assert status["activeProvider"] == "openai"

    def test_status_static_when_nothing_configured(self) -> None:
        pipeline = RecommendationPipeline([FakeProvider(configured=False)])

        assert pipeline.status()["activeProvider"] == "static"


# ── Prompt 工具 ───────────────────────────────────────────────────────

class TestPromptHelpers:
    """测试历史格式化与电影数据块。"""

    def test_format_history_window(self) -> None:
        history = [
            make_message("old", seq=1),
            make_message("I like sci-fi", seq=2),
            make_message("Try Alien", MessageKind.AI, seq=3),
        ]

        assert format_history(history, 2) == "User: I like sci-fi\nAssistant: Try Alien"
        assert format_history(history, 0) == ""

    def test_build_movie_data(self) -> None:
        data = build_movie_data([{
            "title": "Alien",
            "release_date": "1979-05-25",
            "overview": "In space no one can hear you scream.",
            "director": "Ridley Scott",
            "vote_average": 8.2,
            "genres": [{"name": "Horror"}, {"name": "Science Fiction"}],
        }])

        assert "Title: Alien" in data
        assert "Year: 1979" in data
        assert "Director: Ridley Scott" in data
        assert "Genres: Horror, Science Fiction" in data


# ── Gemini + TMDB ─────────────────────────────────────────────────────

def tmdb_transport(search_ids: list[int]) -> httpx.MockTransport:
    """模拟 TMDB：任何搜索都返回 ``search_ids``，详情按 ID 生成。"""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/search/movie"):
            return httpx.Response(200, json={"results": [{"id": i} for i in search_ids]})
        movie_id = int(request.url.path.rsplit("/", 1)[-1])
        return httpx.Response(200, json={
            "id": movie_id,
            "title": f"Movie {movie_id}",
            "release_date": "2001-01-01",
            "overview": "overview",
            "vote_average": 7.5,
            "genres": [{"name": "Drama"}],
            "credits": {"crew": [{"job": "Director", "name": f"Director {movie_id}"}]},
        })

    return httpx.MockTransport(handler)


def make_gemini(responses: list[str], search_ids: list[int], max_details: int = 10):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        side_effect=[SimpleNamespace(text=text) for text in responses],
    )
    tmdb = TMDBClient(httpx.AsyncClient(
        base_url="https://tmdb.test/3", transport=tmdb_transport(search_ids),
    ))
    provider = GeminiProvider(
        client=client, tmdb=tmdb, api_key="k", tmdb_token="t", max_details=max_details,
    )
    return provider, client


class TestGeminiProvider:
    """测试检索增强的主 Provider。"""

    def test_configuration_requires_both_keys(self) -> None:
        assert not GeminiProvider(api_key="k", tmdb_token="").is_configured
        assert not GeminiProvider(api_key="", tmdb_token="t").is_configured
        assert GeminiProvider(api_key="k", tmdb_token="t").is_configured

    @pytest.mark.asyncio
    async def test_grounded_generation(self) -> None:
        provider, client = make_gemini(
            [json.dumps({"titles": ["Heat", "Heat"]}), "  **Movie 1 (2001)** is great  "],
            search_ids=[1, 2, 1],
        )
        history = [make_message("I like crime films")]

        reply = await provider.generate("something like Heat", history)

        assert reply == "**Movie 1 (2001)** is great"
        generation = client.aio.models.generate_content.await_args_list[1].kwargs
        system_prompt = generation["config"].system_instruction
        assert "Title: Movie 1" in system_prompt
        assert "Director: Director 1" in system_prompt
        assert "Director: Director 2" in system_prompt
        assert "User: I like crime films" in generation["contents"]

    @pytest.mark.asyncio
    async def test_candidates_capped(self) -> None:
        provider, client = make_gemini(
            [json.dumps({"titles": ["A"]}), "reply"],
            search_ids=list(range(1, 20)),
            max_details=3,
        )

        await provider.generate("anything", [])

        system_prompt = client.aio.models.generate_content.await_args_list[1].kwargs[
            "config"
        ].system_instruction
        assert system_prompt.count("Title: ") == 3

    @pytest.mark.asyncio
    async def test_no_candidates_raises(self) -> None:
        provider, client = make_gemini([json.dumps({"titles": ["Unknown"]})], search_ids=[])

        with pytest.raises(ProviderError):
            await provider.generate("???", [])
        assert client.aio.models.generate_content.await_count == 1

    @pytest.mark.asyncio
    async def test_unparseable_classification_raises(self) -> None:
        provider, _ = make_gemini(["not json at all"], search_ids=[1])

        with pytest.raises(ProviderError):
            await provider.generate("hello", [])


# ── OpenAI ────────────────────────────────────────────────────────────

class TestOpenAIProvider:
    """测试备用 Provider 的消息组装与调用。"""

    def test_build_messages_uses_recent_history(self) -> None:
        provider = OpenAIProvider(client=MagicMock(), api_key="sk-test", history_window=2)
        history = [
            make_message("first", seq=1),
            make_message("second", seq=2),
            make_message("reply", MessageKind.AI, seq=3),
        ]

        messages = provider.build_messages("new question", history)

        assert messages[0]["role"] == "system"
        assert messages[1:] == [
            {"role": "user", "content": "second"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "new question"},
        ]

    @pytest.mark.asyncio
    async def test_generate(self) -> None:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Watch Heat (1995)"))],
        ))
        provider = OpenAIProvider(client=client, api_key="sk-test", model_name="gpt-test")

        reply = await provider.generate("crime movie?", [])

        assert reply == "Watch Heat (1995)"
        assert client.chat.completions.create.await_args.kwargs["model"] == "gpt-test"

    def test_not_configured_without_key(self) -> None:
        assert OpenAIProvider(api_key="").is_configured is False

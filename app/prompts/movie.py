"""
app.prompts.movie
~~~~~~~~~~~~~~~~~

电影推荐助手的 Prompt 与 Prompt 构建工具。

将 Prompt 独立管理，方便在不修改 Provider 调用代码的前提下调整推荐策略。
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from app.schemas.chat import Message, MessageKind

# ---------------------------------------------------------------------------
# 分类 Prompt —— 从用户消息中猜测候选片名与检索条件
# ---------------------------------------------------------------------------
CLASSIFY_SYSTEM_PROMPT: str = """\
You are an AI assistant that guesses potential movie titles based on user messages.
If the user's message clearly refers to a specific movie, return only that movie title.
For ambiguous requests, generate up to 10 potential movie titles.
Also extract an optional release year, an optional ISO 3166-1 region code and an
optional language tag (for example "en-US") when the user mentions them.
Return ONLY a JSON object of the form
{"titles": ["..."], "year": null, "region": null, "language": null}
Example for specific movie: {"titles": ["The Green Mile"]}
Example for ambiguous request: {"titles": ["The Matrix", "Inception", "Interstellar"]}\
"""


def build_classify_prompt(user_message: str) -> str:
    return f"Based on this message, guess up to 10 potential movie titles:\n{user_message}"


# ---------------------------------------------------------------------------
# 主 Provider 生成 Prompt —— 必须基于检索到的电影数据回答
# ---------------------------------------------------------------------------
GROUNDED_SYSTEM_PROMPT_TEMPLATE: str = """\
You are an expert movie recommendation assistant. Based on the following movie data, provide personalized recommendations:

{movie_data}

Guidelines:
- Use only the provided movie data for information
- Include brief descriptions from the movie data
- Consider user's preferences and conversation context
- Suggest 2-4 movies per response
- Be conversational and enthusiastic
- Ask follow-up questions to better understand preferences

Format:
- **Movie Title (Year)** - Overview from movie data
- Include director from movie data
- Include rating and genres from movie data\
"""


def build_grounded_system_prompt(movie_data: str) -> str:
    return GROUNDED_SYSTEM_PROMPT_TEMPLATE.format(movie_data=movie_data)


def build_grounded_user_prompt(user_message: str, formatted_history: str) -> str:
    """把格式化后的历史与本次用户消息组装为生成调用的用户 Prompt。"""
    return (
        f"Conversation history:\n{formatted_history}\n\n"
        f"User message: {user_message}\n\n"
        "Please provide movie recommendations based on this request and conversation context."
    )


# ---------------------------------------------------------------------------
# 备用 Provider 系统 Prompt —— 只有指令，不含检索数据
# ---------------------------------------------------------------------------
FALLBACK_SYSTEM_PROMPT: str = """\
You are a helpful movie recommendation assistant with deep knowledge of cinema across all genres, eras, and cultures.
Your role is to provide personalized, insightful movie recommendations based on user preferences.

Guidelines for your responses:
- Always provide specific movie titles with release years
- Include brief, compelling descriptions that highlight what makes each movie special
- Consider the user's mood, preferences, and previous conversation context
- Suggest 2-4 movies per response unless asked for more
- Include diverse options when possible (different genres, eras, countries)
- Be conversational and enthusiastic about movies
- Ask follow-up questions to better understand preferences

Format your recommendations clearly with:
- **Movie Title (Year)** - Brief description
- Include director for notable films
- Mention key actors if relevant
- Explain why it fits their request\
"""

# ---------------------------------------------------------------------------
# 静态兜底回复 —— 所有 Provider 都不可用时原样返回
# ---------------------------------------------------------------------------
STATIC_FALLBACK_REPLY: str = (
    "I'm sorry, I'm having trouble connecting to my AI services right now. "
    "Here are some popular movie recommendations:\n"
    "\n"
    "**The Shawshank Redemption (1994)** - A powerful story of hope and friendship\n"
    "**Inception (2010)** - Mind-bending sci-fi thriller by Christopher Nolan  \n"
    "**Spirited Away (2001)** - Beautiful animated film from Studio Ghibli\n"
    "**Parasite (2019)** - Brilliant Korean thriller about class and society\n"
    "\n"
    "What type of movies do you usually enjoy?"
)


def speaker_of(message: Message) -> str:
    """``human`` 消息记为 User，其余（AI / 系统）记为 Assistant。"""
    return "User" if message.kind is MessageKind.HUMAN else "Assistant"


def format_history(history: Sequence[Message], window: int) -> str:
    """把最近 ``window`` 条消息格式化为 ``User: ...`` / ``Assistant: ...`` 行。"""
    if window <= 0:
        return ""
    return "\n".join(
        f"{speaker_of(message)}: {message.content}"
        for message in history[-window:]
    )


def build_movie_data(movies: Iterable[dict[str, Any]]) -> str:
    """把 TMDB 详情列表格式化为生成调用使用的电影数据块。"""
    blocks: list[str] = []
    for movie in movies:
        release_date = movie.get("release_date") or ""
        year = release_date.split("-")[0] if release_date else "Unknown"
        genres = ", ".join(g.get("name", "") for g in movie.get("genres") or [])
        blocks.append(
            f"Title: {movie.get('title', 'Unknown')}\n"
            f"Year: {year}\n"
            f"Overview: {movie.get('overview') or ''}\n"
            f"Director: {movie.get('director') or 'Unknown'}\n"
            f"Rating: {movie.get('vote_average', 'N/A')}/10\n"
            f"Genres: {genres}"
        )
    return "\n\n".join(blocks)

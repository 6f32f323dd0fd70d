"""
app.schemas.movie
~~~~~~~~~~~~~~~~~

电影检索相关的数据结构。
"""
from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class MovieSearchParams(BaseModel):
    """分类调用的结构化输出：候选片名 + 可选检索条件。"""

    titles: list[str] = Field(default_factory=list, description="猜测的候选片名")
    year: int | None = Field(default=None, description="上映年份")
    region: str | None = Field(default=None, description="ISO 3166-1 地区代码")
    language: str | None = Field(default=None, description="语言标签，如 en-US")

    @field_validator("titles")
    @classmethod
    def _strip_titles(cls, value: list[str]) -> list[str]:
        # 去除空白与重复，保持原有顺序
        seen: dict[str, None] = {}
        for title in value:
            title = title.strip()
            if title:
                seen.setdefault(title, None)
        return list(seen)

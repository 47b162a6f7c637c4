"""Highlight analysis — ask the model for the most memorable moments of a run.

The non-streaming ``chat()`` call returns a JSON array somewhere in its text;
the first ``[...]`` span is parsed and every entry is validated. Anything
malformed is dropped with a warning; the call itself only raises when the
transport does.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from .data import ROSTER, STORY_INFO
from .llm import ChatTransport

logger = logging.getLogger(__name__)

HighlightType = Literal["bond", "conflict", "growth", "crisis"]

HIGHLIGHT_TYPES: dict[str, dict[str, str]] = {
    "bond": {"icon": "💕", "label": "羁绊共鸣", "color": "#e91e8c"},
    "conflict": {"icon": "⚡", "label": "矛盾冲突", "color": "#ef4444"},
    "growth": {"icon": "🌟", "label": "成长蜕变", "color": "#ffd700"},
    "crisis": {"icon": "🔥", "label": "危机时刻", "color": "#f97316"},
}

MAX_HIGHLIGHTS = 4

_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


class HighlightCharacter(BaseModel):
    id: str
    name: str


class Highlight(BaseModel):
    highlight_id: str
    title: str
    summary: str
    type: HighlightType
    characters: list[HighlightCharacter] = Field(default_factory=list)
    emotional_score: int = Field(ge=0, le=100)


_KEY_ALIASES = {"highlightId": "highlight_id", "emotionalScore": "emotional_score"}


def build_analysis_prompt(dialogues: list[dict[str, str]]) -> str:
    lines = "\n".join(
        f"{i}. [{d.get('role', '')}]: {d.get('content', '')}"
        for i, d in enumerate(dialogues, start=1)
    )
    cast = "、".join(f"{c.name}（{c.title}）" for c in ROSTER)
    return f"""\
你是一个专业的 K-pop 偶像养成剧情分析师。请分析以下《{STORY_INFO["title"]}》的对话，提取2-{MAX_HIGHLIGHTS}个最精彩的高光片段。

## 对话历史
{lines}

## 涉及角色
{cast}

## 输出要求
请以 JSON 数组格式返回，每个片段包含：
- highlight_id: 唯一ID (如 "hl_001")
- title: 片段标题 (6-10字，K-pop 风格)
- summary: 内容摘要 (20-40字)
- type: 片段类型 (bond/conflict/growth/crisis)
- characters: 涉及角色数组 [{{"id": ..., "name": ...}}]
- emotional_score: 情感强度 (0-100)

只返回 JSON 数组，不要其他内容。"""


def parse_highlights(content: str) -> list[Highlight]:
    match = _ARRAY_RE.search(content)
    if not match:
        logger.warning("No JSON array in highlight response: %r", content[:200])
        return []
    try:
        raw = json.loads(match.group(0))
    except json.JSONDecodeError:
        logger.warning("Highlight response is not valid JSON: %r", content[:200])
        return []
    if not isinstance(raw, list):
        return []

    highlights: list[Highlight] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        normalized = {_KEY_ALIASES.get(k, k): v for k, v in entry.items()}
        try:
            highlights.append(Highlight.model_validate(normalized))
        except ValidationError as e:
            logger.warning("Skipping invalid highlight: %s", e)
    return highlights[:MAX_HIGHLIGHTS]


async def analyze_highlights(
    transport: ChatTransport, dialogues: list[dict[str, str]]
) -> list[Highlight]:
    """Ask the model for 2-4 highlights of the given dialogue."""
    prompt = build_analysis_prompt(dialogues)
    content = await transport.chat([{"role": "user", "content": prompt}])
    highlights = parse_highlights(content)
    logger.debug("Highlight analysis: %d dialogues -> %d highlights", len(dialogues), len(highlights))
    return highlights

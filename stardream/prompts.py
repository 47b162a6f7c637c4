"""Handlebars prompt rendering for the narrator system prompt.

The system prompt is rebuilt from the live GameState on every turn. Every
section is always present; empty pieces render an explicit placeholder
(无 / 空) so the prompt keeps the same shape for the model.
"""

from collections.abc import Callable
from typing import Any

import pybars

from .data import (
    GAME_SCRIPT,
    HONORIFICS,
    ITEMS,
    MAX_ACTION_POINTS,
    MAX_MONTHS,
    PERIODS,
    SCENES,
    STORY_INFO,
    get_available_characters,
    get_current_chapter,
)
from .models import Character, GameState

CHOICE_COUNT = 4

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


DEFAULT_SYSTEM_PROMPT = """\
你是《{{{title}}}》的AI叙述者。

## 游戏剧本
{{{script}}}

## 当前状态
玩家「{{{player.name}}}」（NPC称呼: {{{player.honorific}}}）
第{{time.month}}/{{time.max_month}}月 · {{{time.period}}}
第{{chapter.id}}章「{{{chapter.name}}}」— {{{chapter.description}}}
当前场景：{{{scene.name}}} — {{{scene.description}}}
行动力：{{time.action_points}}/{{time.max_action_points}}
出道倒计时：{{time.debut_countdown}}月

## 当前交互角色
{{#if char}}
{{{char.name}}}（{{{char.title}}}，{{char.age}}岁）
性格：{{{char.personality}}}
简介：{{{char.description}}}
说话风格：{{{char.speaking_style}}}
行为模式：{{{char.behavior_patterns}}}
触发点：{{{char.trigger_points}}}
秘密：{{{char.secret}}}
当前数值：{{{char.stats}}}
{{else}}
无
{{/if}}

## 当前数值
💰 金钱：{{resources.money}}万韩元（月支出{{resources.monthly_expense}}万）
⭐ 名声：{{resources.fame}}

角色数值:
{{{roster}}}

## 背包
{{{inventory}}}

## 已触发事件
{{{triggered_events}}}

## 历史摘要
{{{history_summary}}}

## 选项系统（必须严格遵守）
每次回复末尾必须给出恰好{{choice_count}}个行动选项，格式严格如下：
1. 选项文本（简洁，15字以内）
2. 选项文本
3. 选项文本
4. 选项文本
规则：
- 必须恰好{{choice_count}}个，不能多也不能少
- 选项前不要加"你的选择"等标题行
- 选项应涵盖不同的情感策略和行动方向
- 每个选项要具体、有剧情推动力，不要笼统\
"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def format_stats(char: Character, stats: dict[str, int]) -> str:
    """'信任50 依赖30 …' in declared order; missing values read 0."""
    return " ".join(f"{m.label}{stats.get(m.key, 0)}" for m in char.stat_metas)


def format_roster(state: GameState) -> str:
    lines = []
    visible = get_available_characters(state.current_month, state.characters)
    for cid, char in visible.items():
        kind = "练习生" if char.is_trainee else "对手"
        lines.append(f"{char.name}({kind}): {format_stats(char, state.character_stats.get(cid, {}))}")
    return "\n".join(lines) or "无"


def format_inventory(inventory: dict[str, int]) -> str:
    parts = []
    for item_id, count in inventory.items():
        item = ITEMS.get(item_id)
        if item and count > 0:
            parts.append(f"{item.icon} {item.name} x{count}")
    return "、".join(parts) or "空"


def build_context(state: GameState, script: str = GAME_SCRIPT) -> dict[str, Any]:
    """Assemble template variables from the game state."""
    chapter = get_current_chapter(state.current_month)
    scene = SCENES.get(state.current_scene)
    period = PERIODS[state.current_period_index] if 0 <= state.current_period_index < len(PERIODS) else PERIODS[0]

    ctx: dict[str, Any] = {
        "title": STORY_INFO["title"],
        "script": script.strip() or "无",
        "player": {
            "name": state.player_name,
            "honorific": HONORIFICS.get(state.player_gender, HONORIFICS["unspecified"]),
        },
        "time": {
            "month": state.current_month,
            "max_month": MAX_MONTHS,
            "period": period.name,
            "action_points": state.action_points,
            "max_action_points": MAX_ACTION_POINTS,
            "debut_countdown": state.debut_countdown,
        },
        "chapter": {
            "id": chapter.id,
            "name": chapter.name,
            "description": chapter.description,
        },
        "scene": {
            "name": scene.name if scene else "练习室",
            "description": scene.description if scene else "无",
        },
        "char": None,
        "resources": {
            "money": state.global_resources.money,
            "fame": state.global_resources.fame,
            "monthly_expense": state.monthly_expense,
        },
        "roster": format_roster(state),
        "inventory": format_inventory(state.inventory),
        "triggered_events": "、".join(state.triggered_events) or "无",
        "history_summary": state.history_summary.strip() or "旅程刚刚开始",
        "choice_count": CHOICE_COUNT,
    }

    char = state.characters.get(state.current_character) if state.current_character else None
    if char is not None:
        ctx["char"] = {
            "name": char.name,
            "title": char.title,
            "age": char.age,
            "personality": char.personality,
            "description": char.description,
            "speaking_style": char.speaking_style,
            "behavior_patterns": char.behavior_patterns or "无",
            "trigger_points": "、".join(char.trigger_points) or "无",
            "secret": char.secret or "无",
            "stats": format_stats(char, state.character_stats.get(char.id, {})),
        }
    return ctx


def build_system_prompt(
    state: GameState,
    script: str = GAME_SCRIPT,
    template: str = DEFAULT_SYSTEM_PROMPT,
) -> str:
    """Render the narrator instruction text for the current state."""
    return render_prompt(template, build_context(state, script))

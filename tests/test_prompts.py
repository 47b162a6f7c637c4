"""Tests for Handlebars prompt rendering and the narrator system prompt."""

import pytest

from stardream.data import build_characters
from stardream.game import initial_stats
from stardream.models import GameState, GlobalResources
from stardream.prompts import (
    PromptError,
    build_context,
    build_system_prompt,
    format_inventory,
    render_prompt,
)


@pytest.fixture
def state() -> GameState:
    chars = build_characters("male")
    return GameState(
        game_started=True,
        player_gender="male",
        player_name="志浩",
        characters=chars,
        action_points=6,
        character_stats=initial_stats(chars),
        global_resources=GlobalResources(money=100, fame=0),
        monthly_expense=30,
        debut_countdown=36,
        inventory={"aunt-note": 1},
    )


def _section(prompt: str, heading: str) -> str:
    return prompt.split(f"## {heading}")[1].split("\n## ")[0].strip()


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_render_if_else():
    tpl = "{{#if char}}{{char.name}}{{else}}无{{/if}}"
    assert render_prompt(tpl, {"char": {"name": "金敏秀"}}) == "金敏秀"
    assert render_prompt(tpl, {"char": None}) == "无"


def test_render_triple_stash_not_escaped():
    assert render_prompt("{{{x}}}", {"x": "<a & b>"}) == "<a & b>"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


# ── build_system_prompt ──────────────────────────────────────


def test_header_and_player(state):
    prompt = build_system_prompt(state)
    assert prompt.startswith("你是《首尔星梦事务所》的AI叙述者。")
    assert "玩家「志浩」（NPC称呼: 哥/社长/老板）" in prompt


def test_time_and_chapter(state):
    prompt = build_system_prompt(state)
    assert "第1/36月 · 清晨" in prompt
    assert "第1章「破晓时分」" in prompt
    assert "行动力：6/6" in prompt


def test_no_active_character_placeholder(state):
    prompt = build_system_prompt(state)
    assert _section(prompt, "当前交互角色") == "无"


def test_active_character_profile(state):
    state.current_character = "minsu"
    section = _section(build_system_prompt(state), "当前交互角色")
    assert "金敏秀（练习生·主唱，19岁）" in section
    assert "秘密：" in section
    assert "当前数值：信任50 依赖30" in section


def test_roster_lists_every_visible_character(state):
    prompt = build_system_prompt(state)
    assert "金敏秀(练习生): 信任50" in prompt
    assert "姜雅琳(对手): 态度40" in prompt


def test_resources_and_inventory(state):
    prompt = build_system_prompt(state)
    assert "💰 金钱：100万韩元（月支出30万）" in prompt
    assert "⭐ 名声：0" in prompt
    assert _section(prompt, "背包") == "📝 姑姑的笔记 x1"


def test_empty_placeholders(state):
    state.inventory = {"aunt-note": 0}
    prompt = build_system_prompt(state)
    assert _section(prompt, "背包") == "空"
    assert _section(prompt, "已触发事件") == "无"
    assert _section(prompt, "历史摘要") == "旅程刚刚开始"


def test_choice_instructions(state):
    prompt = build_system_prompt(state)
    assert "恰好4个行动选项" in prompt


def test_prompt_reflects_latest_state(state):
    before = build_system_prompt(state)
    state.global_resources.money = 55
    state.triggered_events.append("first-show")
    after = build_system_prompt(state)
    assert before != after
    assert "💰 金钱：55万韩元" in after
    assert _section(after, "已触发事件") == "first-show"


def test_player_name_not_html_escaped(state):
    state.player_name = "<测试>"
    assert "玩家「<测试>」" in build_system_prompt(state)


def test_custom_template(state):
    assert build_system_prompt(state, template="{{player.name}}|{{time.month}}") == "志浩|1"


def test_context_has_no_char_by_default(state):
    assert build_context(state)["char"] is None


def test_format_inventory_skips_unknown_items():
    assert format_inventory({"ghost-item": 3}) == "空"

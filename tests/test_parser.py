"""Tests for stardream.parser — choice extraction, stat tags, narrative markup."""

import pytest

from stardream.data import build_characters
from stardream.models import Message
from stardream.parser import (
    DEFAULT_STAT_COLOR,
    detect_speaker,
    escape_html,
    extract_choices,
    parse_story_paragraph,
    render_turn,
    split_stat_tags,
)


# ── extract_choices ──────────────────────────────────────


class TestExtractChoices:
    def test_four_numbered_choices(self) -> None:
        text = "敏秀低着头。\n1. 安慰他\n2. 让他唱一首\n3. 去找智妍\n4. 离开"
        clean, choices = extract_choices(text)
        assert choices == ["安慰他", "让他唱一首", "去找智妍", "离开"]
        assert clean == "敏秀低着头。"

    def test_lead_in_and_blank_line_removed(self) -> None:
        text = "开场白。\n\n你的选择：\n1. 去练习室\n2. 找敏秀\n3. 休息\n4. 开会"
        clean, choices = extract_choices(text)
        assert len(choices) == 4
        assert clean == "开场白。"

    def test_english_lead_in(self) -> None:
        text = "Story.\nYour choices:\n1. a\n2. b"
        clean, choices = extract_choices(text)
        assert choices == ["a", "b"]
        assert clean == "Story."

    def test_lettered_choices(self) -> None:
        clean, choices = extract_choices("文本\nA) 左边\nB) 右边")
        assert choices == ["左边", "右边"]
        assert clean == "文本"

    def test_single_choice_not_extracted(self) -> None:
        text = "文本\n1. 只有一个"
        assert extract_choices(text) == (text, [])

    def test_choices_not_trailing_not_extracted(self) -> None:
        text = "1. a\n2. b\n后来的叙述。"
        assert extract_choices(text) == (text, [])

    def test_trailing_blank_lines_tolerated(self) -> None:
        clean, choices = extract_choices("文本\n1. a\n2. b\n\n")
        assert choices == ["a", "b"]
        assert clean == "文本"

    def test_empty_input(self) -> None:
        assert extract_choices("") == ("", [])


# ── split_stat_tags ──────────────────────────────────────


class TestSplitStatTags:
    def test_inline_tag_removed(self) -> None:
        assert split_stat_tags("【金敏秀 信任+5】很高兴") == ("很高兴", ["【金敏秀 信任+5】"])

    def test_tag_only_line_dropped(self) -> None:
        clean, tags = split_stat_tags("第一行\n【金钱-10】\n第二行")
        assert clean == "第一行\n第二行"
        assert tags == ["【金钱-10】"]

    def test_speaker_tag_kept(self) -> None:
        assert split_stat_tags("【金敏秀】你好") == ("【金敏秀】你好", [])


# ── parse_story_paragraph ────────────────────────────────


class TestParseStoryParagraph:
    def test_stat_line_routed_to_stat_block(self) -> None:
        parsed = parse_story_paragraph("【信任+5】")
        assert parsed.narrative == ""
        assert 'class="stat-changes"' in parsed.stat_html
        assert '<span class="stat-up">+5</span>' in parsed.stat_html
        assert "color:#e91e8c" in parsed.stat_html

    def test_negative_delta(self) -> None:
        parsed = parse_story_paragraph("【压力-3】")
        assert '<span class="stat-down">-3</span>' in parsed.stat_html

    def test_unknown_label_gets_default_color(self) -> None:
        parsed = parse_story_paragraph("【魔力+3】")
        assert f"color:{DEFAULT_STAT_COLOR}" in parsed.stat_html

    def test_item_gain_line(self) -> None:
        parsed = parse_story_paragraph("【获得 出道舞台邀请函】")
        assert 'class="item-gain"' in parsed.stat_html
        assert parsed.narrative == ""

    def test_speaker_line(self) -> None:
        parsed = parse_story_paragraph("【朴智妍】（抱着手臂）“你就是新社长？”")
        assert 'data-character="jiyeon"' in parsed.narrative
        assert '<span class="action">（抱着手臂）</span>' in parsed.narrative
        assert '<span class="dialogue">“你就是新社长？”</span>' in parsed.narrative
        assert parsed.speaker == "jiyeon"
        assert parsed.char_color == "#ec4899"

    def test_inline_spans(self) -> None:
        parsed = parse_story_paragraph('你推开门 *深呼吸* "早上好" (微笑)')
        assert '<span class="action">*深呼吸*</span>' in parsed.narrative
        assert '<span class="dialogue">&quot;早上好&quot;</span>' in parsed.narrative
        assert '<span class="action">(微笑)</span>' in parsed.narrative
        assert '<span class="plain">你推开门 </span>' in parsed.narrative

    def test_plain_line(self) -> None:
        parsed = parse_story_paragraph("风很安静。")
        assert parsed.narrative == '<p><span class="plain">风很安静。</span></p>'
        assert parsed.stat_html == ""
        assert parsed.speaker is None

    def test_name_mention_sets_speaker(self) -> None:
        parsed = parse_story_paragraph("崔成勋笑着递上咖啡。")
        assert parsed.speaker == "seonghoon"
        assert '<span class="char-name">崔成勋</span>' in parsed.narrative

    def test_html_escaped(self) -> None:
        parsed = parse_story_paragraph("<script>alert(1)</script>")
        assert "<script>" not in parsed.narrative
        assert "&lt;script&gt;" in parsed.narrative

    @pytest.mark.parametrize("text", ["", "【", "[[[]]]", "（未闭合", "*", '"', "】+5【", "\n\n\n"])
    def test_never_raises(self, text: str) -> None:
        parse_story_paragraph(text)


# ── detect_speaker / render_turn ─────────────────────────


class TestSpeaker:
    def test_tag_line_beats_mention_order(self) -> None:
        text = "金敏秀看向门口。\n【朴智妍】哼。"
        assert detect_speaker(text) == "jiyeon"

    def test_first_in_table_order(self) -> None:
        assert detect_speaker("崔成勋和金敏秀一起笑了。") == "minsu"

    def test_nobody(self) -> None:
        assert detect_speaker("空无一人。") is None


class TestRenderTurn:
    def test_stat_notes_rendered(self) -> None:
        msg = Message(
            id="m1", role="assistant", content="很高兴", timestamp=1,
            character="minsu", stat_notes=["【金敏秀 信任+5】"],
        )
        parsed = render_turn(msg, build_characters())
        assert "stat-up" in parsed.stat_html
        assert "很高兴" in parsed.narrative
        assert parsed.speaker == "minsu"
        assert parsed.char_color == "#3b82f6"


def test_escape_html() -> None:
    assert escape_html('a & <b> "c"') == "a &amp; &lt;b&gt; &quot;c&quot;"

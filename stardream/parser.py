"""Reply parsing — model text into display-ready narrative, stat notes and choices.

Everything here is a pure text transform over untrusted model output and must
never raise. Literal text is HTML-escaped before any markup is added.

Line classes (parse_story_paragraph):
  【好感+5】 / [金钱-10]     pure stat-change line → stat block
  【获得…】                  item-gain line → stat block
  【金敏秀】rest of line      speaker line → attributed to that character
  anything else             narration, split into inline spans:
                            (…) （…） *…*  → action
                            "…" “…”      → dialogue
                            rest         → plain

Choice format (extract_choices): a trailing run of "1. text" … "4. text"
(or A-D) lines, optionally preceded by a lead-in such as "你的选择：".
"""

import re

from pydantic import BaseModel

from .data import GLOBAL_ALIASES, ROSTER
from .models import Character, Message

DEFAULT_STAT_COLOR = "#9ca3af"

RESOURCE_COLORS = {"money": "#ffd700", "fame": "#e91e8c"}


def _build_stat_colors() -> dict[str, str]:
    colors: dict[str, str] = {}
    for char in ROSTER:
        for meta in char.stat_metas:
            for label in (meta.label, f"{meta.label}度", f"{meta.label}值"):
                colors.setdefault(label, meta.color)
    for alias, resource in GLOBAL_ALIASES.items():
        colors.setdefault(alias, RESOURCE_COLORS[resource])
    return colors


STAT_COLORS = _build_stat_colors()
# Longest label first so "信任度" wins over "信任"
_STAT_LABELS = sorted(STAT_COLORS, key=len, reverse=True)

_STAT_LINE_RE = re.compile(r"^(?:[【\[][^】\]]*[+-]\d+[^】\]]*[】\]]\s*)+$")
_STAT_TAG_RE = re.compile(r"[【\[][^】\]\n]*?[+-]\d+[^】\]\n]*[】\]]")
_ITEM_GAIN_RE = re.compile(r"^[【\[]获得")
_SPEAKER_RE = re.compile(r"^[【\[]([^】\]]+)[】\]]\s*(.*)$")
_DELTA_RE = re.compile(r"([+-])(\d+[万%]?)")
_INLINE_RE = re.compile(
    r"(?P<action>\([^()\n]*\)|（[^（）\n]*）|\*[^*\n]+\*)"
    r"|(?P<dialogue>\"[^\"\n]*\"|“[^”\n]*”)"
)

_CHOICE_RE = re.compile(r"^(?:[1-4]|[A-Da-d])[.、．)）]\s*(.+)$")
_LEAD_IN_RE = re.compile(
    r"选择|选项|你可以|接下来|你的行动|your choices|next action|what will you do",
    re.IGNORECASE,
)


class ParsedParagraph(BaseModel):
    narrative: str
    stat_html: str
    char_color: str | None = None
    speaker: str | None = None


def escape_html(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _roster(characters: dict[str, Character] | None) -> dict[str, Character]:
    if characters is None:
        return {c.id: c for c in ROSTER}
    return characters


# ── Choices ──────────────────────────────────────────────


def extract_choices(content: str) -> tuple[str, list[str]]:
    """Split trailing numbered choices off a reply.

    Returns (clean_content, choices). Fewer than two trailing choice lines
    means no extraction: the content comes back unchanged with [].
    """
    lines = content.split("\n")
    choices: list[str] = []
    start = len(lines)

    for i in range(len(lines) - 1, -1, -1):
        stripped = lines[i].strip()
        if not stripped:
            continue
        match = _CHOICE_RE.match(stripped)
        if not match:
            break
        choices.insert(0, match.group(1).strip())
        start = i

    if len(choices) < 2:
        return content, []

    cut = start
    if cut > 0 and not lines[cut - 1].strip():
        cut -= 1
    if cut > 0 and _LEAD_IN_RE.search(lines[cut - 1]):
        cut -= 1
    if cut > 0 and not lines[cut - 1].strip():
        cut -= 1

    return "\n".join(lines[:cut]).strip(), choices


# ── Stat tags ────────────────────────────────────────────


def split_stat_tags(text: str) -> tuple[str, list[str]]:
    """Remove inline stat-change tags from text.

    Returns (text_without_tags, tags). Lines left empty by the removal are
    dropped; blank lines already present are kept.
    """
    tags: list[str] = []
    out: list[str] = []
    for line in text.split("\n"):
        found = _STAT_TAG_RE.findall(line)
        if not found:
            out.append(line)
            continue
        tags.extend(found)
        rest = _STAT_TAG_RE.sub("", line).strip()
        if rest:
            out.append(rest)
    return "\n".join(out).strip(), tags


def _stat_color(line: str) -> str:
    for label in _STAT_LABELS:
        if label in line:
            return STAT_COLORS[label]
    return DEFAULT_STAT_COLOR


def _render_stat_line(line: str) -> str:
    def _delta(m: re.Match) -> str:
        cls = "stat-up" if m.group(1) == "+" else "stat-down"
        return f'<span class="{cls}">{m.group(0)}</span>'

    body = _DELTA_RE.sub(_delta, escape_html(line))
    color = _stat_color(line)
    return f'<div class="stat-change" style="color:{color};font-weight:600">{body}</div>'


# ── Narrative ────────────────────────────────────────────


def _highlight_names(escaped: str, characters: dict[str, Character]) -> str:
    for char in characters.values():
        escaped = escaped.replace(char.name, f'<span class="char-name">{char.name}</span>')
    return escaped


def render_inline(line: str, characters: dict[str, Character] | None = None) -> str:
    """Render one narration line as action / dialogue / plain spans."""
    chars = _roster(characters)
    parts: list[str] = []
    pos = 0
    for match in _INLINE_RE.finditer(line):
        if match.start() > pos:
            plain = _highlight_names(escape_html(line[pos:match.start()]), chars)
            parts.append(f'<span class="plain">{plain}</span>')
        kind = "action" if match.group("action") else "dialogue"
        parts.append(f'<span class="{kind}">{escape_html(match.group(0))}</span>')
        pos = match.end()
    if pos < len(line):
        plain = _highlight_names(escape_html(line[pos:]), chars)
        parts.append(f'<span class="plain">{plain}</span>')
    return "".join(parts)


def _speaker_of_line(line: str, by_name: dict[str, Character]) -> tuple[Character, str] | None:
    match = _SPEAKER_RE.match(line)
    if not match:
        return None
    char = by_name.get(match.group(1).strip())
    if char is None:
        return None
    return char, match.group(2)


def detect_speaker(content: str, characters: dict[str, Character] | None = None) -> str | None:
    """Best guess at who is speaking: a 【name】 line first, then any name mention."""
    chars = _roster(characters)
    by_name = {c.name: c for c in chars.values()}
    for raw in content.split("\n"):
        found = _speaker_of_line(raw.strip(), by_name)
        if found:
            return found[0].id
    for cid, char in chars.items():
        if char.name in content:
            return cid
    return None


def parse_story_paragraph(
    content: str, characters: dict[str, Character] | None = None
) -> ParsedParagraph:
    """Render a reply (or a partial, streaming reply) for display."""
    chars = _roster(characters)
    by_name = {c.name: c for c in chars.values()}
    paragraphs: list[str] = []
    stat_parts: list[str] = []

    for raw in content.split("\n"):
        line = raw.strip()
        if not line:
            continue

        if _STAT_LINE_RE.match(line):
            stat_parts.append(_render_stat_line(line))
            continue

        if _ITEM_GAIN_RE.match(line):
            stat_parts.append(f'<div class="item-gain">{escape_html(line)}</div>')
            continue

        found = _speaker_of_line(line, by_name)
        if found:
            char, rest = found
            paragraphs.append(
                f'<p class="dialogue-line" data-character="{char.id}">'
                f'<span class="char-name" style="color:{char.theme_color}">'
                f"{escape_html(char.name)}</span> {render_inline(rest, chars)}</p>"
            )
            continue

        paragraphs.append(f"<p>{render_inline(line, chars)}</p>")

    speaker = detect_speaker(content, chars)
    return ParsedParagraph(
        narrative="\n".join(paragraphs),
        stat_html=(
            f'<div class="stat-changes">{"".join(stat_parts)}</div>' if stat_parts else ""
        ),
        char_color=chars[speaker].theme_color if speaker else None,
        speaker=speaker,
    )


def render_turn(message: Message, characters: dict[str, Character] | None = None) -> ParsedParagraph:
    """Render a stored assistant turn together with its stat notes."""
    text = message.content
    if message.stat_notes:
        text = text + "\n" + "\n".join(message.stat_notes)
    parsed = parse_story_paragraph(text, characters)
    if message.character:
        chars = _roster(characters)
        if message.character in chars:
            parsed.speaker = message.character
            parsed.char_color = chars[message.character].theme_color
    return parsed

"""Stat-change interpreter — bracketed tags in model text into typed deltas.

Two patterns are scanned over the whole reply:

  【金敏秀 信任+5】  prefix, label, sign, digits
                   prefix is a character name or a global alias; label is a
                   declared stat label, optionally suffixed 度 or 值
  【金钱+20】       single token, sign, digits (optional 万) — global aliases
                   only; skipped when an identical delta was already collected

A tag without a known name prefix falls back to a label lookup across every
character in table order; the first declaring character wins. Anything that
does not resolve is ignored.
"""

import logging
import re

from .data import GLOBAL_ALIASES
from .models import (
    Character,
    CharacterStatChange,
    GameState,
    GlobalStatChange,
    StatChanges,
)

logger = logging.getLogger(__name__)

STAT_MIN = 0
STAT_MAX = 100

_TAG_RE = re.compile(r"[【\[]([^\]】]+?)\s*(\S+?)([+-])(\d+)[】\]]")
_SIMPLE_TAG_RE = re.compile(r"[【\[]([^\s\]】+-]+?)([+-])(\d+)万?[】\]]")

_LABEL_SUFFIXES = ("", "度", "值")


def _label_forms(label: str) -> list[str]:
    return [f"{label}{suffix}" for suffix in _LABEL_SUFFIXES]


def _find_stat(char: Character, label: str) -> str | None:
    for meta in char.stat_metas:
        if label in _label_forms(meta.label):
            return meta.key
    return None


def _build_label_index(characters: dict[str, Character]) -> dict[str, tuple[str, str]]:
    """label form → (char_id, stat_key); first character in table order wins."""
    index: dict[str, tuple[str, str]] = {}
    for cid, char in characters.items():
        for meta in char.stat_metas:
            for form in _label_forms(meta.label):
                index.setdefault(form, (cid, meta.key))
    return index


def parse_stat_changes(content: str, characters: dict[str, Character]) -> StatChanges:
    """Collect character-stat and global-resource deltas from text."""
    result = StatChanges()
    name_to_id = {c.name: cid for cid, c in characters.items()}
    label_index = _build_label_index(characters)

    for match in _TAG_RE.finditer(content):
        prefix = match.group(1).strip()
        label = match.group(2)
        delta = int(match.group(4)) * (1 if match.group(3) == "+" else -1)
        whole = re.sub(r"\s+", "", prefix + label)

        global_key = GLOBAL_ALIASES.get(prefix) or GLOBAL_ALIASES.get(label) or GLOBAL_ALIASES.get(whole)
        if global_key and prefix not in name_to_id:
            result.global_changes.append(GlobalStatChange(resource=global_key, delta=delta))
            continue

        char_id = name_to_id.get(prefix)
        if char_id:
            stat = _find_stat(characters[char_id], label)
            if stat:
                result.char_changes.append(
                    CharacterStatChange(char_id=char_id, stat=stat, delta=delta)
                )
            continue

        # Name glued to the label: 【金敏秀信任+5】
        glued = None
        for name, cid in name_to_id.items():
            if whole.startswith(name) and len(whole) > len(name):
                stat = _find_stat(characters[cid], whole[len(name):])
                if stat:
                    glued = CharacterStatChange(char_id=cid, stat=stat, delta=delta)
                    break
        if glued:
            result.char_changes.append(glued)
            continue

        for candidate in (whole, prefix, label):
            info = label_index.get(candidate)
            if info:
                result.char_changes.append(
                    CharacterStatChange(char_id=info[0], stat=info[1], delta=delta)
                )
                break

    for match in _SIMPLE_TAG_RE.finditer(content):
        global_key = GLOBAL_ALIASES.get(match.group(1).strip())
        if not global_key:
            continue
        delta = int(match.group(3)) * (1 if match.group(2) == "+" else -1)
        already = any(
            g.resource == global_key and g.delta == delta for g in result.global_changes
        )
        if not already:
            result.global_changes.append(GlobalStatChange(resource=global_key, delta=delta))

    logger.debug(
        "parsed stat changes: %d character, %d global",
        len(result.char_changes), len(result.global_changes),
    )
    return result


def clamp_stat(value: int) -> int:
    return max(STAT_MIN, min(STAT_MAX, value))


def apply_stat_changes(state: GameState, changes: StatChanges) -> None:
    """Apply all deltas to state. Stats clamp to [0,100]; resources floor at 0."""
    for change in changes.char_changes:
        stats = state.character_stats.get(change.char_id)
        if stats is None or change.stat not in stats:
            continue
        stats[change.stat] = clamp_stat(stats[change.stat] + change.delta)

    resources = state.global_resources
    for change in changes.global_changes:
        if change.resource == "money":
            resources.money = max(0, resources.money + change.delta)
        elif change.resource == "fame":
            resources.fame = max(0, resources.fame + change.delta)

"""Core domain models.

Reference tables (characters, scenes, items, chapters, events, endings) are
immutable once built; only GameState is mutated, and only by the Game command
set. Pydantic is used for validation and serialisation at every data boundary,
including the save blob.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Gender = Literal["male", "female", "unspecified"]
Role = Literal["user", "assistant", "system"]
StatCategory = Literal["relation", "status", "skill"]
ItemType = Literal["consumable", "collectible", "quest", "social", "upgrade"]
EndingCategory = Literal["TE", "HE", "BE", "NE"]
MessageType = Literal["scene-transition", "month-change", "chapter-change"]
Tab = Literal["dialogue", "scene", "character"]


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

class StatMeta(BaseModel):
    """Declares one stat a character carries: machine key, label, display hints."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    color: str
    icon: str
    category: StatCategory
    auto_increment: int = 0  # added on every month wrap
    decay_rate: int = 0      # subtracted on every month wrap


class Character(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    portrait: str = ""
    gender: Literal["male", "female"]
    age: int
    title: str
    description: str
    personality: str
    speaking_style: str
    secret: str
    trigger_points: list[str] = Field(default_factory=list)
    behavior_patterns: str = ""
    theme_color: str
    join_month: int = 1
    is_trainee: bool = True
    stat_metas: list[StatMeta]
    initial_stats: dict[str, int] = Field(default_factory=dict)

    def stat_keys(self) -> list[str]:
        return [m.key for m in self.stat_metas]


class Scene(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    icon: str
    description: str
    background: str
    atmosphere: str
    tags: list[str] = Field(default_factory=list)


class GameItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    icon: str
    type: ItemType
    description: str
    max_count: int
    cost: int | None = None


class Chapter(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    month_range: tuple[int, int]  # inclusive
    description: str
    objectives: list[str] = Field(default_factory=list)
    atmosphere: str = ""


class ForcedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    trigger_month: int
    trigger_period: int | None = None  # None → first advance into the month
    description: str


class Ending(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: EndingCategory
    description: str
    condition: str  # documentation only


class TimePeriod(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    name: str
    icon: str
    hours: str


# ---------------------------------------------------------------------------
# Turn log
# ---------------------------------------------------------------------------

class MonthInfo(BaseModel):
    month: int
    period: str
    chapter: str


class Message(BaseModel):
    """A single entry in the append-only turn log.

    Rich turns (``type`` set) carry structured payload for the UI and are
    never sent back to the model as conversation history.
    """

    id: str
    role: Role
    content: str
    timestamp: int
    character: str | None = None
    type: MessageType | None = None
    scene_id: str | None = None
    month_info: MonthInfo | None = None
    stat_notes: list[str] = Field(default_factory=list)


class StoryRecord(BaseModel):
    """Player-facing timeline entry, derived from turns."""

    id: str
    month: int
    period: str
    title: str
    content: str


class GlobalResources(BaseModel):
    money: int = 0
    fame: int = 0


# ---------------------------------------------------------------------------
# Parsed model output
# ---------------------------------------------------------------------------

class CharacterStatChange(BaseModel):
    char_id: str
    stat: str
    delta: int


class GlobalStatChange(BaseModel):
    resource: Literal["money", "fame"]
    delta: int


class StatChanges(BaseModel):
    char_changes: list[CharacterStatChange] = Field(default_factory=list)
    global_changes: list[GlobalStatChange] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Mutable game state and its persisted snapshot
# ---------------------------------------------------------------------------

class GameState(BaseModel):
    game_started: bool = False
    player_gender: Gender = "unspecified"
    player_name: str = "玩家"
    characters: dict[str, Character] = Field(default_factory=dict)

    current_month: int = 1
    current_period_index: int = 0
    action_points: int = 0

    current_scene: str = "practice"
    current_character: str | None = None
    character_stats: dict[str, dict[str, int]] = Field(default_factory=dict)
    unlocked_scenes: list[str] = Field(default_factory=list)

    global_resources: GlobalResources = Field(default_factory=GlobalResources)
    current_chapter: int = 1
    triggered_events: list[str] = Field(default_factory=list)
    monthly_expense: int = 0
    debut_countdown: int = 0
    inventory: dict[str, int] = Field(default_factory=dict)

    messages: list[Message] = Field(default_factory=list)
    history_summary: str = ""
    is_typing: bool = False
    streaming_content: str = ""

    ending_type: str | None = None

    active_tab: Tab = "dialogue"
    choices: list[str] = Field(default_factory=list)
    show_dashboard: bool = False
    show_records: bool = False
    story_records: list[StoryRecord] = Field(default_factory=list)


class SaveBlob(BaseModel):
    """Versioned snapshot of the dynamic state.

    Static character definitions are not stored; they are rebuilt from
    ``player_gender`` on load.
    """

    version: int
    player_gender: Gender = "unspecified"
    player_name: str = "玩家"
    current_month: int
    current_period_index: int
    action_points: int
    current_scene: str
    current_character: str | None = None
    character_stats: dict[str, dict[str, int]]
    unlocked_scenes: list[str] | None = None
    global_resources: GlobalResources | None = None
    current_chapter: int | None = None
    triggered_events: list[str] = Field(default_factory=list)
    monthly_expense: int | None = None
    debut_countdown: int | None = None
    inventory: dict[str, int]
    messages: list[Message] = Field(default_factory=list)
    history_summary: str = ""
    story_records: list[StoryRecord] = Field(default_factory=list)
    ending_type: str | None = None

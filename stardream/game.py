"""Game state machine — the single owner of mutable GameState.

Every change goes through a Game command; callers only read ``game.state``
and may subscribe to change notifications. Commands are synchronous except
``send_message``, which awaits the chat transport.

send_message(text) runs in this order:

  1. append the user turn, set is_typing
  2. fold old turns into history_summary when the log is long
  3. build the system prompt from the compressed state
  4. stream the reply (system prompt + recent plain turns)
  5. parse and apply stat deltas
  6. split narrative, stat notes and choices; detect the speaker
  7. append the assistant turn
  8. replace choices (parsed, or a fallback set)
  9. append a story record
 10. clear is_typing / streaming_content
 11. evaluate endings
 12. save

A transport error stops after step 4: typing flags are cleared and a system
turn carries the error text. The user turn stays in the log.

init_game, reset_game and load_game start a new session generation. A reply
that arrives for an older generation is dropped without touching state.
"""

from __future__ import annotations

import itertools
import json
import logging
import time
from collections.abc import Callable
from typing import get_args

from pydantic import ValidationError

from .analytics import Tracker
from .data import (
    HONORIFICS,
    INITIAL_CHOICES,
    INITIAL_INVENTORY,
    INITIAL_MONEY,
    INITIAL_SCENE,
    INITIAL_UNLOCKED_SCENES,
    ITEMS,
    MAX_ACTION_POINTS,
    MAX_MONTHS,
    MONTHLY_EXPENSE,
    PERIODS,
    QUICK_ACTIONS,
    SCENES,
    build_characters,
    get_current_chapter,
    get_month_events,
)
from .endings import (
    GRACE_MONTHS,
    all_trainees_estranged,
    evaluate_ending,
    is_bankrupt,
    trainee_ids,
)
from .llm import ChatTransport
from .models import (
    Character,
    GameItem,
    GameState,
    Gender,
    GlobalResources,
    Message,
    MonthInfo,
    SaveBlob,
    StoryRecord,
    Tab,
    TimePeriod,
)
from .parser import detect_speaker, extract_choices, split_stat_tags
from .prompts import CHOICE_COUNT, build_system_prompt
from .stat_changes import apply_stat_changes, clamp_stat, parse_stat_changes
from .storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

SAVE_VERSION = 1
DEFAULT_SAVE_KEY = "xingmeng-save-v1"

HISTORY_COMPRESS_THRESHOLD = 15
HISTORY_KEEP = 10
SUMMARY_LINE_CHARS = 80
SUMMARY_MAX_CHARS = 2000
SAVE_MESSAGE_WINDOW = 30
SAVE_RECORD_WINDOW = 50

STRESS_CRISIS = 80

Listener = Callable[["Game"], None]

# ── Item effects ─────────────────────────────────────────

# Social items: stat deltas applied to the active trainee
SOCIAL_EFFECTS: dict[str, tuple[dict[str, int], str]] = {
    "comfort": ({"stress": -10, "mood": 5}, "🫂 你温暖地安慰了练习生，压力-10 心情+5"),
    "encourage": ({"mood": 10}, "🔥 你发表了一番激励人心的话，心情+10"),
    "strict": ({"stress": 5}, "📏 你严厉地指出了问题，压力+5 但训练会更有效"),
}

QUEST_TEXT: dict[str, str] = {
    "aunt-note": '📝 你翻开姑姑的笔记，熟悉的字迹映入眼帘——"不要试图改变他们，要帮他们找到自己..."',
    "debut-invitation": "💌 你再次展开邀请函，烫金的字在灯下闪着光。出道舞台就在眼前。",
}

UPGRADE_TEXT: dict[str, str] = {
    "training-gear": "🎧 购入了专业训练设备！训练效果大幅提升。金钱-{cost}",
}

_id_counter = itertools.count(1)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _make_id(prefix: str) -> str:
    """Unique within the process even for ids minted in the same millisecond."""
    return f"{prefix}-{_now_ms()}-{next(_id_counter)}"


def reconcile_stats(
    characters: dict[str, Character], stats: dict[str, dict[str, int]]
) -> dict[str, dict[str, int]]:
    """Exactly the declared keys per character, clamped; missing values read 0."""
    return {
        cid: {
            key: clamp_stat(int(stats.get(cid, {}).get(key, 0)))
            for key in char.stat_keys()
        }
        for cid, char in characters.items()
    }


def initial_stats(characters: dict[str, Character]) -> dict[str, dict[str, int]]:
    return reconcile_stats(
        characters, {cid: dict(c.initial_stats) for cid, c in characters.items()}
    )


def _shorten(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


class Game:
    """Command/query facade over one GameState.

    Args:
        transport: chat backend used by send_message.
        store:     key-value store for the single save slot. Defaults to memory.
        tracker:   analytics tracker. Defaults to a tracker with a null sink.
        save_key:  key of the save slot in the store.
    """

    def __init__(
        self,
        transport: ChatTransport,
        store: KeyValueStore | None = None,
        tracker: Tracker | None = None,
        save_key: str = DEFAULT_SAVE_KEY,
    ) -> None:
        self.state = GameState()
        self._transport = transport
        self._store = store if store is not None else MemoryStore()
        self._tracker = tracker or Tracker()
        self._save_key = save_key
        self._generation = 0
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def current_period(self) -> TimePeriod:
        idx = self.state.current_period_index
        return PERIODS[idx] if 0 <= idx < len(PERIODS) else PERIODS[0]

    @property
    def current_character(self) -> Character | None:
        cid = self.state.current_character
        return self.state.characters.get(cid) if cid else None

    def find_message(self, message_id: str) -> Message:
        for msg in self.state.messages:
            if msg.id == message_id:
                return msg
        raise ValueError(f"Message not found: {message_id}")

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener(game) after every state change. Returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.warning("Game listener %r failed", listener, exc_info=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append(self, role: str, content: str, **fields) -> Message:
        msg = Message(id=_make_id("msg"), role=role, content=content, timestamp=_now_ms(), **fields)
        self.state.messages.append(msg)
        return msg

    def _record(self, title: str, content: str) -> StoryRecord:
        record = StoryRecord(
            id=_make_id("sr"),
            month=self.state.current_month,
            period=self.current_period.name,
            title=title,
            content=content,
        )
        self.state.story_records.append(record)
        return record

    def _fallback_choices(self) -> list[str]:
        char = self.current_character
        if char is not None:
            return [
                f"继续和{char.name}交流",
                f"安排{char.name}训练",
                f"了解{char.name}的近况",
                "换个话题",
            ]
        return list(QUICK_ACTIONS)

    def _commit_ending(self, ending_id: str) -> None:
        if self.state.ending_type:
            return
        self._tracker.ending_reached(ending_id)
        self.state.ending_type = ending_id
        logger.info("Ending reached: %s (month %d)", ending_id, self.state.current_month)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def set_player_info(self, gender: Gender, name: str = "") -> None:
        if gender not in HONORIFICS:
            raise ValueError(f"Unknown player gender: {gender!r}")
        self.state.player_gender = gender
        self.state.player_name = name.strip() or "玩家"
        self._tracker.player_create(gender, self.state.player_name)
        self._notify()

    def init_game(self) -> None:
        """Start a new game from the current player profile."""
        self._generation += 1
        gender = self.state.player_gender
        name = self.state.player_name
        characters = build_characters(gender)

        self.state = GameState(
            game_started=True,
            player_gender=gender,
            player_name=name,
            characters=characters,
            action_points=MAX_ACTION_POINTS,
            current_scene=INITIAL_SCENE,
            character_stats=initial_stats(characters),
            unlocked_scenes=list(INITIAL_UNLOCKED_SCENES),
            global_resources=GlobalResources(money=INITIAL_MONEY, fame=0),
            monthly_expense=MONTHLY_EXPENSE,
            debut_countdown=MAX_MONTHS,
            inventory=dict(INITIAL_INVENTORY),
            choices=list(INITIAL_CHOICES),
        )
        self._append(
            "system",
            f"欢迎来到《首尔星梦事务所》！\n\n你是刚接管姑姑事务所的新任社长「{name}」。"
            "三位怀揣梦想的练习生正等着你的决定：这个事务所，还能继续吗？\n\n"
            f"{MAX_MONTHS}个月的倒计时已经开始。",
        )
        self._record("接管事务所", f"{name}正式接管姑姑的练习生事务所，出道倒计时开始。")

        self._tracker.game_start()
        logger.info("New game: player=%s gender=%s", name, gender)
        self.save_game()
        self._notify()

    def start(self, gender: Gender, name: str = "") -> None:
        self.set_player_info(gender, name)
        self.init_game()

    # ------------------------------------------------------------------
    # Pointers and UI fields
    # ------------------------------------------------------------------

    def select_character(self, char_id: str | None) -> None:
        if char_id is not None:
            char = self.state.characters.get(char_id)
            if char is None:
                raise ValueError(f"Character not found: {char_id}")
            if char.join_month > self.state.current_month:
                raise ValueError(f"Character not available yet: {char_id}")
        self.state.current_character = char_id
        self.state.active_tab = "dialogue"
        self._notify()

    def select_scene(self, scene_id: str) -> None:
        scene = SCENES.get(scene_id)
        if scene is None:
            raise ValueError(f"Scene not found: {scene_id}")
        if scene_id not in self.state.unlocked_scenes:
            raise ValueError(f"Scene is locked: {scene_id}")
        if scene_id == self.state.current_scene:
            return

        self._tracker.scene_unlock(scene_id)
        self.state.current_scene = scene_id
        self.state.active_tab = "dialogue"
        self._append(
            "system",
            f"你来到了{scene.name}。{scene.atmosphere}",
            type="scene-transition",
            scene_id=scene_id,
        )
        self._notify()

    def set_active_tab(self, tab: Tab) -> None:
        if tab not in get_args(Tab):
            raise ValueError(f"Unknown tab: {tab!r}")
        self.state.active_tab = tab
        self.state.show_dashboard = False
        self.state.show_records = False
        self._notify()

    def toggle_dashboard(self) -> None:
        self.state.show_dashboard = not self.state.show_dashboard
        if self.state.show_dashboard:
            self.state.show_records = False
        self._notify()

    def toggle_records(self) -> None:
        self.state.show_records = not self.state.show_records
        if self.state.show_records:
            self.state.show_dashboard = False
        self._notify()

    def add_system_message(self, content: str) -> Message:
        msg = self._append("system", content)
        self._notify()
        return msg

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    def _compress_history(self) -> None:
        state = self.state
        if len(state.messages) <= HISTORY_COMPRESS_THRESHOLD:
            return
        old = state.messages[:-HISTORY_KEEP]
        folded = "\n".join(
            f"[{m.role}] {m.content[:SUMMARY_LINE_CHARS]}"
            for m in old
            if m.role != "system" or m.type
        )
        state.history_summary = (state.history_summary + "\n" + folded)[-SUMMARY_MAX_CHARS:]
        state.messages = state.messages[-HISTORY_KEEP:]
        logger.debug(
            "Compressed %d turns into summary (%d chars)", len(old), len(state.history_summary)
        )

    def _chat_messages(self) -> list[dict[str, str]]:
        prompt = build_system_prompt(self.state)
        recent = [m for m in self.state.messages if m.type is None][-HISTORY_KEEP:]
        logger.debug("Prompt %d chars, %d recent turns", len(prompt), len(recent))
        return [{"role": "system", "content": prompt}] + [
            {"role": m.role, "content": m.content} for m in recent
        ]

    async def send_message(self, text: str) -> bool:
        """Run one conversation turn. Returns False when ignored or failed."""
        state = self.state
        if state.is_typing or state.ending_type:
            logger.debug("send_message ignored (typing=%s ending=%s)", state.is_typing, state.ending_type)
            return False

        generation = self._generation
        self._append("user", text)
        state.is_typing = True
        state.streaming_content = ""
        self._compress_history()
        chat_messages = self._chat_messages()
        self._notify()

        def on_chunk(chunk: str) -> None:
            if generation != self._generation:
                return
            self.state.streaming_content += chunk
            self._notify()

        try:
            reply = await self._transport.stream_chat(chat_messages, on_chunk)
        except Exception as e:
            if generation != self._generation:
                logger.info("Dropping transport error from a finished session: %s", e)
                return False
            logger.exception("Chat transport failed")
            self.state.is_typing = False
            self.state.streaming_content = ""
            self._append("system", f"请求失败: {str(e) or type(e).__name__}")
            self._notify()
            return False

        if generation != self._generation:
            logger.info("Dropping stale reply (%d chars)", len(reply or ""))
            return False

        self._apply_reply(text, reply or "")
        return True

    def _apply_reply(self, user_text: str, reply: str) -> None:
        state = self.state

        apply_stat_changes(state, parse_stat_changes(reply, state.characters))

        narrative, parsed_choices = extract_choices(reply)
        narrative, stat_notes = split_stat_tags(narrative)
        speaker = detect_speaker(reply, state.characters)

        self._append(
            "assistant",
            narrative,
            character=speaker or state.current_character,
            stat_notes=stat_notes,
        )

        choices = parsed_choices if len(parsed_choices) >= 2 else self._fallback_choices()
        state.choices = choices[:CHOICE_COUNT]

        self._record(_shorten(user_text, 20), narrative[:100] + "...")

        state.is_typing = False
        state.streaming_content = ""

        self.check_ending()
        self.save_game()
        self._notify()

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def _start_new_month(self) -> bool:
        """Month wrap bookkeeping. Returns True when the chapter changed."""
        state = self.state
        state.current_period_index = 0
        state.current_month += 1
        state.action_points = MAX_ACTION_POINTS

        resources = state.global_resources
        resources.money = max(0, resources.money - state.monthly_expense)
        state.debut_countdown = max(0, state.debut_countdown - 1)

        for cid, char in state.characters.items():
            stats = state.character_stats.get(cid)
            if stats is None:
                continue
            for meta in char.stat_metas:
                drift = meta.auto_increment - meta.decay_rate
                if drift and meta.key in stats:
                    stats[meta.key] = clamp_stat(stats[meta.key] + drift)

        for cid in trainee_ids(state):
            stress = state.character_stats.get(cid, {}).get("stress", 0)
            if stress > STRESS_CRISIS:
                self._tracker.stress_crisis(cid, stress)

        period = PERIODS[0]
        chapter = get_current_chapter(state.current_month)
        self._append(
            "system",
            f"第{state.current_month}月 · {period.name}",
            type="month-change",
            month_info=MonthInfo(month=state.current_month, period=period.name, chapter=chapter.name),
        )

        chapter_changed = chapter.id != state.current_chapter
        if chapter_changed:
            state.current_chapter = chapter.id
            self._append(
                "system",
                f"— 第{chapter.id}章「{chapter.name}」{chapter.description} —",
                type="chapter-change",
            )
            logger.info("Chapter %d: %s", chapter.id, chapter.name)

        self._record(f"进入第{state.current_month}月", f"{chapter.name} · {period.name}")
        logger.info("Month %d (money=%d)", state.current_month, resources.money)
        return chapter_changed

    def advance_time(self) -> None:
        """Advance one period; wrapping into a new month runs the monthly update."""
        state = self.state
        if state.ending_type:
            logger.debug("advance_time ignored, ending %s reached", state.ending_type)
            return

        state.current_period_index += 1
        chapter_changed = False
        if state.current_period_index >= len(PERIODS):
            chapter_changed = self._start_new_month()

        self._tracker.time_advance(state.current_month, self.current_period.name)
        if chapter_changed:
            self._tracker.chapter_enter(state.current_chapter)

        if state.current_period_index == 0 and is_bankrupt(state):
            self._tracker.bankrupt()
            self._commit_ending("be-bankrupt")
            self.save_game()
            self._notify()
            return

        if state.current_month > GRACE_MONTHS and all_trainees_estranged(state):
            self._commit_ending("be-all-leave")
            self.save_game()
            self._notify()
            return

        for event in get_month_events(state.current_month, state.triggered_events):
            if event.trigger_period is None or event.trigger_period == state.current_period_index:
                state.triggered_events.append(event.id)
                self._append("system", f"🎬 【{event.name}】{event.description}")
                logger.info("Forced event: %s", event.id)

        if state.current_month >= MAX_MONTHS and state.current_period_index == len(PERIODS) - 1:
            self.check_ending()

        self.save_game()
        self._notify()

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def use_item(self, item_id: str) -> Message:
        """Use or buy an item. Returns the system turn describing the outcome."""
        item = ITEMS.get(item_id)
        if item is None:
            raise ValueError(f"Item not found: {item_id}")

        if item.type == "upgrade":
            msg = self._buy_upgrade(item)
        else:
            msg = self._use_owned_item(item)
        self.save_game()
        self._notify()
        return msg

    def _use_owned_item(self, item: GameItem) -> Message:
        state = self.state
        if state.inventory.get(item.id, 0) <= 0:
            return self._append("system", f"你没有 {item.name} 了。")

        if item.type == "social":
            char = self.current_character
            if char is None or not char.is_trainee:
                return self._append("system", f"{item.icon} 请先选择一位练习生。")
            deltas, text = SOCIAL_EFFECTS.get(item.id, ({}, f"{item.icon} 你使用了{item.name}。"))
            self._consume(item)
            stats = state.character_stats.get(char.id, {})
            for key, delta in deltas.items():
                if key in stats:
                    stats[key] = clamp_stat(stats[key] + delta)
            return self._append("system", text)

        if item.type == "consumable":
            self._consume(item)
        return self._append("system", QUEST_TEXT.get(item.id, f"{item.icon} 你查看了{item.name}。"))

    def _consume(self, item: GameItem) -> None:
        inventory = self.state.inventory
        inventory[item.id] = max(0, inventory.get(item.id, 0) - 1)

    def _buy_upgrade(self, item: GameItem) -> Message:
        state = self.state
        if state.inventory.get(item.id, 0) >= 1:
            return self._append("system", f"{item.icon} {item.name}已经购入了。")
        cost = item.cost or 0
        if state.global_resources.money < cost:
            return self._append("system", f"💰 资金不足，无法购买{item.name}。")
        state.global_resources.money -= cost
        state.inventory[item.id] = 1
        text = UPGRADE_TEXT.get(item.id, f"{item.icon} 购入了{item.name}！金钱-{{cost}}")
        return self._append("system", text.format(cost=cost))

    # ------------------------------------------------------------------
    # Endings
    # ------------------------------------------------------------------

    def check_ending(self) -> str | None:
        if self.state.ending_type:
            return self.state.ending_type
        ending = evaluate_ending(self.state)
        if ending:
            self._commit_ending(ending)
        return ending

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _snapshot(self) -> SaveBlob:
        state = self.state
        return SaveBlob(
            version=SAVE_VERSION,
            player_gender=state.player_gender,
            player_name=state.player_name,
            current_month=state.current_month,
            current_period_index=state.current_period_index,
            action_points=state.action_points,
            current_scene=state.current_scene,
            current_character=state.current_character,
            character_stats=state.character_stats,
            unlocked_scenes=state.unlocked_scenes,
            global_resources=state.global_resources,
            current_chapter=state.current_chapter,
            triggered_events=state.triggered_events,
            monthly_expense=state.monthly_expense,
            debut_countdown=state.debut_countdown,
            inventory=state.inventory,
            messages=state.messages[-SAVE_MESSAGE_WINDOW:],
            history_summary=state.history_summary,
            story_records=state.story_records[-SAVE_RECORD_WINDOW:],
            ending_type=state.ending_type,
        )

    def save_game(self) -> bool:
        """Best-effort save. Returns False when nothing was written."""
        if not self.state.game_started:
            return False
        try:
            raw = self._snapshot().model_dump_json()
            self._store.set(self._save_key, raw)
        except Exception:
            logger.warning("Save failed for key %s", self._save_key, exc_info=True)
            return False
        logger.debug("Saved %d bytes to %s", len(raw), self._save_key)
        return True

    def _read_save(self) -> SaveBlob | None:
        try:
            raw = self._store.get(self._save_key)
        except Exception:
            logger.warning("Reading save %s failed", self._save_key, exc_info=True)
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Save %s is not valid JSON", self._save_key)
            return None
        version = data.get("version") if isinstance(data, dict) else None
        if isinstance(version, bool) or version != SAVE_VERSION:
            logger.warning("Save %s has version %r, expected %d", self._save_key, version, SAVE_VERSION)
            return None
        try:
            return SaveBlob.model_validate(data)
        except ValidationError as e:
            logger.warning("Save %s failed validation: %s", self._save_key, e)
            return None

    def has_save(self) -> bool:
        return self._read_save() is not None

    def load_game(self) -> bool:
        """Restore the saved game. Returns False, leaving state untouched, on any failure."""
        blob = self._read_save()
        if blob is None:
            return False

        characters = build_characters(blob.player_gender)
        resources = blob.global_resources or GlobalResources(money=INITIAL_MONEY, fame=0)
        self._generation += 1
        self.state = GameState(
            game_started=True,
            player_gender=blob.player_gender,
            player_name=blob.player_name or "玩家",
            characters=characters,
            current_month=blob.current_month,
            current_period_index=blob.current_period_index,
            action_points=blob.action_points,
            current_scene=blob.current_scene,
            current_character=blob.current_character if blob.current_character in characters else None,
            character_stats=reconcile_stats(characters, blob.character_stats),
            unlocked_scenes=(
                blob.unlocked_scenes if blob.unlocked_scenes is not None else list(INITIAL_UNLOCKED_SCENES)
            ),
            global_resources=GlobalResources(money=max(0, resources.money), fame=max(0, resources.fame)),
            current_chapter=blob.current_chapter or 1,
            triggered_events=blob.triggered_events,
            monthly_expense=blob.monthly_expense if blob.monthly_expense is not None else MONTHLY_EXPENSE,
            debut_countdown=blob.debut_countdown if blob.debut_countdown is not None else MAX_MONTHS,
            inventory=blob.inventory,
            messages=blob.messages,
            history_summary=blob.history_summary,
            story_records=blob.story_records,
            ending_type=blob.ending_type,
        )
        self.state.choices = self._fallback_choices()

        self._tracker.game_continue()
        logger.info(
            "Loaded game: month=%d period=%d ending=%s",
            self.state.current_month, self.state.current_period_index, self.state.ending_type,
        )
        self._notify()
        return True

    def clear_save(self) -> None:
        try:
            self._store.remove(self._save_key)
        except Exception:
            logger.warning("Clearing save %s failed", self._save_key, exc_info=True)

    def reset_game(self) -> None:
        """Back to the pre-game screen; the player profile is kept, the save is deleted."""
        self._generation += 1
        self.state = GameState(
            player_gender=self.state.player_gender,
            player_name=self.state.player_name,
        )
        self.clear_save()
        logger.info("Game reset")
        self._notify()

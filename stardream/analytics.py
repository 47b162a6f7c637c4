"""Analytics — fire-and-forget game events.

Events go to a sink with a single method, ``track(name, data)``. The game
talks to a Tracker, which wraps the sink and guarantees that tracking never
raises into game logic. Event names carry the ``xm_`` prefix:

    xm_game_start      new game initialised
    xm_game_continue   save loaded
    xm_player_create   player profile set           {gender, name}
    xm_time_advance    period advanced               {month, period}
    xm_chapter_enter   chapter changed               {chapter}
    xm_ending_reached  ending committed              {ending}
    xm_bankrupt        money ran out at month start
    xm_scene_unlock    scene visited                 {scene}
    xm_stress_crisis   trainee stress above 80       {char_id, stress}
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

EventData = dict[str, Any]


class AnalyticsSink(Protocol):
    def track(self, name: str, data: EventData | None = None) -> None: ...


class NullSink:
    def track(self, name: str, data: EventData | None = None) -> None:
        pass


class LoggingSink:
    """Writes every event to the log at INFO level."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logging.getLogger("stardream.events")

    def track(self, name: str, data: EventData | None = None) -> None:
        self._log.info("event %s %s", name, data or {})


class RecordingSink:
    """Keeps events in memory, in order. Handy for tests and debugging."""

    def __init__(self) -> None:
        self.events: list[tuple[str, EventData | None]] = []

    def track(self, name: str, data: EventData | None = None) -> None:
        self.events.append((name, data))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class Tracker:
    def __init__(self, sink: AnalyticsSink | None = None) -> None:
        self._sink = sink or NullSink()

    def track(self, name: str, data: EventData | None = None) -> None:
        try:
            self._sink.track(name, data)
        except Exception:
            logger.warning("Analytics sink failed on %s", name, exc_info=True)

    # ── Named events ─────────────────────────────────────────

    def game_start(self) -> None:
        self.track("xm_game_start")

    def game_continue(self) -> None:
        self.track("xm_game_continue")

    def player_create(self, gender: str, name: str) -> None:
        self.track("xm_player_create", {"gender": gender, "name": name})

    def time_advance(self, month: int, period: str) -> None:
        self.track("xm_time_advance", {"month": month, "period": period})

    def chapter_enter(self, chapter: int) -> None:
        self.track("xm_chapter_enter", {"chapter": chapter})

    def ending_reached(self, ending: str) -> None:
        self.track("xm_ending_reached", {"ending": ending})

    def bankrupt(self) -> None:
        self.track("xm_bankrupt")

    def scene_unlock(self, scene: str) -> None:
        self.track("xm_scene_unlock", {"scene": scene})

    def stress_crisis(self, char_id: str, stress: int) -> None:
        self.track("xm_stress_crisis", {"char_id": char_id, "stress": stress})

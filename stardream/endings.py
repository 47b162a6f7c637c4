"""Ending evaluation — a pure function of GameState.

Conditions are checked in a fixed order and the first match wins:

  be-bankrupt   money <= 0
  be-all-leave  every trainee's trust < LOW_TRUST
  te-legacy     every trainee's trust >= HIGH_TRUST, the milestone event has
                fired and the average skill triple >= BEST_SKILL
  he-debut      average trust >= GOOD_TRUST and average skill >= GOOD_SKILL
  ne-landing    current month >= MAX_MONTHS

An ending is absorbing: once state.ending_type is set the evaluator returns
it unchanged. Only trainees (is_trainee) count; rivals are ignored.
"""

from .data import MAX_MONTHS, MILESTONE_EVENT
from .models import GameState

LOW_TRUST = 20
HIGH_TRUST = 70
BEST_SKILL = 50
GOOD_TRUST = 50
GOOD_SKILL = 40

# Estrangement only ends the game from advance_time once past this month
GRACE_MONTHS = 6

TRUST_STAT = "trust"
SKILL_TRIPLE = ("dance", "singing", "variety")


def trainee_ids(state: GameState) -> list[str]:
    return [cid for cid, c in state.characters.items() if c.is_trainee]


def _stat(state: GameState, char_id: str, key: str) -> int:
    return state.character_stats.get(char_id, {}).get(key, 0)


def average_trust(state: GameState) -> float:
    ids = trainee_ids(state)
    if not ids:
        return 0.0
    return sum(_stat(state, cid, TRUST_STAT) for cid in ids) / len(ids)


def average_skill(state: GameState) -> float:
    """Mean over trainees of each trainee's mean skill triple."""
    ids = trainee_ids(state)
    if not ids:
        return 0.0
    per_char = [
        sum(_stat(state, cid, key) for key in SKILL_TRIPLE) / len(SKILL_TRIPLE)
        for cid in ids
    ]
    return sum(per_char) / len(ids)


def is_bankrupt(state: GameState) -> bool:
    return state.global_resources.money <= 0


def all_trainees_estranged(state: GameState) -> bool:
    ids = trainee_ids(state)
    return bool(ids) and all(_stat(state, cid, TRUST_STAT) < LOW_TRUST for cid in ids)


def _all_trainees_devoted(state: GameState) -> bool:
    ids = trainee_ids(state)
    return bool(ids) and all(_stat(state, cid, TRUST_STAT) >= HIGH_TRUST for cid in ids)


def evaluate_ending(state: GameState) -> str | None:
    """Return the ending id the state has reached, or None."""
    if state.ending_type:
        return state.ending_type

    if is_bankrupt(state):
        return "be-bankrupt"

    if all_trainees_estranged(state):
        return "be-all-leave"

    skill = average_skill(state)
    if (
        _all_trainees_devoted(state)
        and MILESTONE_EVENT in state.triggered_events
        and skill >= BEST_SKILL
    ):
        return "te-legacy"

    if average_trust(state) >= GOOD_TRUST and skill >= GOOD_SKILL:
        return "he-debut"

    if state.current_month >= MAX_MONTHS:
        return "ne-landing"

    return None

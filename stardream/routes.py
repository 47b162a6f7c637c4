"""FastAPI endpoints under /api.

One Game lives on ``app.state.game``; every endpoint reads or commands it and
returns the refreshed read model. Unknown ids are 404, invalid values 400,
and a message sent while a reply is in flight (or after the ending) is 409.
"""

from fastapi import APIRouter, HTTPException, Request

from .data import (
    ENDING_TYPE_MAP,
    ENDINGS_BY_ID,
    ITEMS,
    SCENES,
    get_available_characters,
    get_current_chapter,
    get_stat_level,
)
from .game import Game
from .highlights import analyze_highlights
from .parser import render_turn
from .schemas import CharacterBody, MessageBody, SceneBody, StartBody, TabBody

router = APIRouter()


def _game(request: Request) -> Game:
    return request.app.state.game


def state_view(game: Game) -> dict:
    """Everything the UI renders, in one JSON document."""
    state = game.state
    data = state.model_dump(mode="json", exclude={"characters"})
    visible = get_available_characters(state.current_month, state.characters)
    data["characters"] = [
        {
            **char.model_dump(mode="json"),
            "trust_level": get_stat_level(state.character_stats.get(cid, {}).get("trust", 0))[1],
        }
        for cid, char in visible.items()
    ]
    data["period"] = game.current_period.model_dump()
    data["chapter"] = get_current_chapter(state.current_month).model_dump(mode="json")
    data["scene"] = SCENES[state.current_scene].model_dump() if state.current_scene in SCENES else None
    ending = ENDINGS_BY_ID.get(state.ending_type) if state.ending_type else None
    data["ending"] = (
        {**ending.model_dump(), "style": ENDING_TYPE_MAP[ending.type]} if ending else None
    )
    data["has_save"] = game.has_save()
    return data


# ── Meta ─────────────────────────────────────────────────


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Current runtime settings (API key masked)."""
    return request.app.state.settings.public()


# ── Game lifecycle ───────────────────────────────────────


@router.get("/state")
async def get_state(request: Request):
    """Full read model of the running game."""
    return state_view(_game(request))


@router.post("/game/start")
async def start_game(request: Request, body: StartBody):
    """Set the player profile and start a new game."""
    game = _game(request)
    game.start(body.gender, body.name)
    return state_view(game)


@router.post("/game/load")
async def load_game(request: Request):
    """Continue from the save slot."""
    game = _game(request)
    if not game.load_game():
        raise HTTPException(404, "No save found")
    return state_view(game)


@router.post("/game/save")
async def save_game(request: Request):
    """Write the save slot now."""
    game = _game(request)
    return {"ok": game.save_game()}


@router.post("/game/reset")
async def reset_game(request: Request):
    """Back to the start screen; deletes the save."""
    game = _game(request)
    game.reset_game()
    return state_view(game)


# ── Pointers ─────────────────────────────────────────────


@router.post("/game/character")
async def select_character(request: Request, body: CharacterBody):
    """Select the active character, or clear it with null."""
    game = _game(request)
    if body.id is not None and body.id not in game.state.characters:
        raise HTTPException(404, "Character not found")
    try:
        game.select_character(body.id)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return state_view(game)


@router.post("/game/scene")
async def select_scene(request: Request, body: SceneBody):
    """Move to another scene."""
    game = _game(request)
    if body.id not in SCENES:
        raise HTTPException(404, "Scene not found")
    try:
        game.select_scene(body.id)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return state_view(game)


@router.post("/game/tab")
async def set_tab(request: Request, body: TabBody):
    """Switch the active tab; closes the dashboard and records drawers."""
    game = _game(request)
    try:
        game.set_active_tab(body.tab)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return state_view(game)


# ── Turns ────────────────────────────────────────────────


@router.post("/game/message")
async def send_message(request: Request, body: MessageBody):
    """Send a player message and wait for the full reply."""
    game = _game(request)
    state = game.state
    if not state.game_started:
        raise HTTPException(409, "Game not started")
    if state.is_typing:
        raise HTTPException(409, "A reply is already in progress")
    if state.ending_type:
        raise HTTPException(409, "The game has ended")
    await game.send_message(body.text)
    return state_view(game)


@router.post("/game/advance")
async def advance_time(request: Request):
    """Advance one period."""
    game = _game(request)
    if not game.state.game_started:
        raise HTTPException(409, "Game not started")
    game.advance_time()
    return state_view(game)


@router.post("/game/items/{item_id}/use")
async def use_item(request: Request, item_id: str):
    """Use an inventory item, or buy an upgrade."""
    game = _game(request)
    if item_id not in ITEMS:
        raise HTTPException(404, "Item not found")
    if not game.state.game_started:
        raise HTTPException(409, "Game not started")
    msg = game.use_item(item_id)
    return {"message": msg.model_dump(mode="json"), "state": state_view(game)}


@router.get("/game/messages/{message_id}/render")
async def render_message(request: Request, message_id: str):
    """Parsed HTML for one stored turn."""
    game = _game(request)
    try:
        msg = game.find_message(message_id)
    except ValueError:
        raise HTTPException(404, "Message not found")
    return render_turn(msg, game.state.characters or None).model_dump()


@router.post("/game/highlights")
async def highlights(request: Request):
    """Ask the model for the highlights of the live conversation."""
    game = _game(request)
    dialogues = [
        {"role": m.role, "content": m.content}
        for m in game.state.messages
        if m.role in ("user", "assistant")
    ]
    if not dialogues:
        return []
    try:
        found = await analyze_highlights(request.app.state.transport, dialogues)
    except Exception as e:
        raise HTTPException(502, f"Highlight analysis failed: {e}")
    return [h.model_dump() for h in found]

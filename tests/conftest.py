"""Shared fixtures: a deterministic chat transport and ready-made games."""

import pytest

from stardream.analytics import RecordingSink, Tracker
from stardream.game import Game
from stardream.storage import MemoryStore


class StubChat:
    """Deterministic chat transport stand-in for tests.

    Provide replies in call order. A reply that is an Exception instance is
    raised instead of returned. Raises if called more times than replies
    were provided.
    """

    def __init__(self, replies: list[str | Exception] | None = None, chunk_size: int = 0) -> None:
        self._queue: list[str | Exception] = list(replies or [])
        self._chunk_size = chunk_size
        self.calls: list[list[dict[str, str]]] = []

    def queue(self, *replies: str | Exception) -> None:
        self._queue.extend(replies)

    def _next(self, messages: list[dict[str, str]]) -> str:
        self.calls.append(messages)
        if not self._queue:
            raise AssertionError(
                f"StubChat: unexpected call (no replies queued). calls so far: {len(self.calls)}"
            )
        reply = self._queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def chat(self, messages):
        return self._next(messages)

    async def stream_chat(self, messages, on_chunk, on_done=None):
        reply = self._next(messages)
        size = self._chunk_size or len(reply) or 1
        for i in range(0, len(reply), size):
            on_chunk(reply[i:i + size])
        if on_done is not None:
            on_done()
        return reply

    def assert_exhausted(self) -> None:
        """Assert every queued reply was consumed — catches missing chat calls."""
        if self._queue:
            raise AssertionError(f"StubChat: {len(self._queue)} unconsumed replies")


@pytest.fixture
def chat() -> StubChat:
    return StubChat()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def game(chat, store, sink) -> Game:
    """A freshly started game for player 测试."""
    g = Game(chat, store=store, tracker=Tracker(sink))
    g.start("unspecified", "测试")
    return g

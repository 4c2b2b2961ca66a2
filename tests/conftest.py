import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk

from models import EventRecord, Feedback
from store import LifelogStore, MemoryBackend


class ScriptedLLM:
    """
    Stand-in chat model: replays scripted replies (each a list of streamed
    chunks) or raises ``error``. Records every prompt it receives.
    """

    def __init__(self, replies=None, error: Optional[Exception] = None, delay: float = 0):
        self.replies = list(replies or [])
        self.error = error
        self.delay = delay
        self.prompts: List = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def _next(self):
        if self.error:
            raise self.error
        reply = self.replies.pop(0)
        return [reply] if isinstance(reply, str) else reply

    async def astream(self, messages):
        self.prompts.append(messages[0].content)
        if self.delay:
            await asyncio.sleep(self.delay)
        for chunk in self._next():
            yield AIMessageChunk(content=chunk)

    async def ainvoke(self, messages):
        self.prompts.append(messages[0].content)
        return AIMessage(content="".join(self._next()))


def make_record(
    kind: str,
    value: float,
    date: str,
    metadata: Optional[dict] = None,
    timestamp: Optional[datetime] = None,
    record_id: Optional[str] = None,
) -> EventRecord:
    return EventRecord(
        id=record_id or f"{kind}-{date}-{value}",
        user_id="user-1",
        timestamp=timestamp or datetime.fromisoformat(f"{date}T09:00:00+09:00"),
        date=date,
        kind=kind,
        value=value,
        metadata=metadata or {},
    )


def make_feedback(date: str, kind: str = "morning", **fields) -> Feedback:
    defaults = {
        "id": f"fb-{date}-{kind}",
        "user_id": "user-1",
        "date": date,
        "kind": kind,
        "content": f"{kind} note",
        "created_at": datetime(2025, 1, 20, 12, 0, tzinfo=timezone.utc),
    }
    defaults.update(fields)
    return Feedback(**defaults)


@pytest.fixture
def store():
    return LifelogStore(MemoryBackend())

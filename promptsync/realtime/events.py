# promptsync/realtime/events.py
"""
Typed events sent to live viewers as `{type, data}` JSON envelopes.
"""
import json
from enum import Enum
from typing import Any, Dict, List, Sequence

from pydantic import BaseModel

from promptsync.schemas import Prompt


class EventType(str, Enum):
    INITIAL_DATA = "initial_data"
    PROMPT_CREATED = "prompt_created"
    PROMPT_UPDATED = "prompt_updated"
    PROMPT_DELETED = "prompt_deleted"
    PROMPTS_IMPORTED = "prompts_imported"


# Liveness probe frames, not events: never broadcast.
PING_FRAME = json.dumps({"type": "ping"})
PONG_TYPE = "pong"


class SyncEvent(BaseModel):
    type: EventType
    data: Any

    def to_json(self) -> str:
        return self.model_dump_json()

    # --- constructors, one per event type
    @classmethod
    def snapshot(cls, prompts: Sequence[Prompt]) -> "SyncEvent":
        data: List[Dict[str, Any]] = [p.model_dump(mode="json") for p in prompts]
        return cls(type=EventType.INITIAL_DATA, data=data)

    @classmethod
    def created(cls, prompt: Prompt) -> "SyncEvent":
        return cls(type=EventType.PROMPT_CREATED, data=prompt.model_dump(mode="json"))

    @classmethod
    def updated(cls, prompt: Prompt) -> "SyncEvent":
        return cls(type=EventType.PROMPT_UPDATED, data=prompt.model_dump(mode="json"))

    @classmethod
    def deleted(cls, prompt_id: int) -> "SyncEvent":
        return cls(type=EventType.PROMPT_DELETED, data={"id": prompt_id})

    @classmethod
    def imported(cls, count: int) -> "SyncEvent":
        return cls(type=EventType.PROMPTS_IMPORTED, data={"count": count})

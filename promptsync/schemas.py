# promptsync/schemas.py
from typing import Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class Prompt(BaseModel):
    """A committed prompt record as read back from the store."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    title: str
    content: str
    category: str
    created_at: datetime
    updated_at: datetime


class PromptIn(BaseModel):
    # fields stay optional so the store, not FastAPI, decides what is missing
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None

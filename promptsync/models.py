# promptsync/models.py
from sqlalchemy import Column, Integer, String, DateTime, Text

from promptsync.db import Base

DEFAULT_CATEGORY = "General"


class PromptRow(Base):
    __tablename__ = "prompts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String(128), nullable=False, default=DEFAULT_CATEGORY, index=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, index=True)

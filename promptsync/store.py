# promptsync/store.py
"""
Transactional prompt store.

Every mutation runs under one store-wide lock and inside a single database
transaction, so concurrent writers never observe or produce a mix of two
writes. `bulk_insert` validates the whole batch before touching the database
and commits all rows at once or none of them.
"""
import datetime
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from promptsync import monitoring
from promptsync.db import make_session_factory, init_db
from promptsync.errors import NotFoundError, StorageError, ValidationError
from promptsync.models import DEFAULT_CATEGORY, PromptRow
from promptsync.schemas import Prompt

SAMPLE_PROMPTS = [
    {"title": "Translation assistant", "content": "Translate the following English text into Chinese:", "category": "Tools"},
    {"title": "Writing assistant", "content": "Help me write an article about {topic} with these requirements:", "category": "Writing"},
    {"title": "Code assistant", "content": "Explain what the following code does:", "category": "Development"},
]


def _utcnow() -> datetime.datetime:
    # naive UTC, SQLite DateTime columns drop tzinfo anyway
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def _require_text(value: Any, field: str, row: Optional[int] = None) -> str:
    if not isinstance(value, str) or not value.strip():
        details = {"field": field}
        if row is not None:
            details["row"] = row
        where = f" (row {row})" if row is not None else ""
        raise ValidationError(f"{field} is required{where}", details=details)
    return value


def _category_or_default(value: Any, row: Optional[int] = None) -> str:
    if value is None:
        return DEFAULT_CATEGORY
    if not isinstance(value, str):
        details = {"field": "category"}
        if row is not None:
            details["row"] = row
        raise ValidationError("category must be text", details=details)
    return value if value.strip() else DEFAULT_CATEGORY


class PromptStore:
    def __init__(self, database_url: str = None):
        self.engine, self._session_factory = make_session_factory(database_url)
        init_db(self.engine)
        self._write_lock = threading.RLock()

    def close(self):
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list(self) -> List[Prompt]:
        """All prompts, most recently changed first."""
        try:
            with self._session_factory() as session:
                rows = session.scalars(
                    select(PromptRow).order_by(PromptRow.updated_at.desc(), PromptRow.id.desc())
                ).all()
                return [Prompt.model_validate(r) for r in rows]
        except SQLAlchemyError as e:
            raise StorageError("list failed", details={"exception": str(e)}) from e

    def list_categories(self) -> List[str]:
        try:
            with self._session_factory() as session:
                return list(session.scalars(
                    select(PromptRow.category).distinct().order_by(PromptRow.category)
                ).all())
        except SQLAlchemyError as e:
            raise StorageError("list categories failed", details={"exception": str(e)}) from e

    def get(self, prompt_id: int) -> Prompt:
        try:
            with self._session_factory() as session:
                row = session.get(PromptRow, prompt_id)
                if row is None:
                    raise NotFoundError(f"Prompt {prompt_id} not found", details={"id": prompt_id})
                return Prompt.model_validate(row)
        except SQLAlchemyError as e:
            raise StorageError("get failed", details={"exception": str(e)}) from e

    def count(self) -> int:
        try:
            with self._session_factory() as session:
                return session.scalar(select(func.count()).select_from(PromptRow)) or 0
        except SQLAlchemyError as e:
            raise StorageError("count failed", details={"exception": str(e)}) from e

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(self, title: Any, content: Any, category: Any = None) -> Prompt:
        title = _require_text(title, "title")
        content = _require_text(content, "content")
        category = _category_or_default(category)
        with self._write_lock:
            try:
                with self._session_factory() as session, session.begin():
                    now = _utcnow()
                    row = PromptRow(title=title, content=content, category=category,
                                    created_at=now, updated_at=now)
                    session.add(row)
                    session.flush()
                    prompt = Prompt.model_validate(row)
            except SQLAlchemyError as e:
                monitoring.inc_store_mutation("create", "error")
                raise StorageError("create failed", details={"exception": str(e)}) from e
        monitoring.inc_store_mutation("create", "ok")
        return prompt

    def update(self, prompt_id: int, title: Any, content: Any, category: Any) -> Prompt:
        """Overwrite title, content and category of an existing prompt."""
        title = _require_text(title, "title")
        content = _require_text(content, "content")
        category = _category_or_default(category)
        with self._write_lock:
            try:
                with self._session_factory() as session, session.begin():
                    row = session.get(PromptRow, prompt_id)
                    if row is None:
                        raise NotFoundError(f"Prompt {prompt_id} not found", details={"id": prompt_id})
                    now = _utcnow()
                    if now <= row.updated_at:
                        # keep updated_at strictly increasing on coarse clocks
                        now = row.updated_at + datetime.timedelta(microseconds=1)
                    row.title = title
                    row.content = content
                    row.category = category
                    row.updated_at = now
                    session.flush()
                    prompt = Prompt.model_validate(row)
            except SQLAlchemyError as e:
                monitoring.inc_store_mutation("update", "error")
                raise StorageError("update failed", details={"exception": str(e)}) from e
        monitoring.inc_store_mutation("update", "ok")
        return prompt

    def delete(self, prompt_id: int) -> bool:
        """Delete a prompt. Returns False when there was nothing to delete."""
        with self._write_lock:
            try:
                with self._session_factory() as session, session.begin():
                    row = session.get(PromptRow, prompt_id)
                    if row is None:
                        return False
                    session.delete(row)
            except SQLAlchemyError as e:
                monitoring.inc_store_mutation("delete", "error")
                raise StorageError("delete failed", details={"exception": str(e)}) from e
        monitoring.inc_store_mutation("delete", "ok")
        return True

    def bulk_insert(self, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Insert every row or none.

        The whole batch is validated first; the first invalid row rejects it
        with a ValidationError naming the row index. Valid batches are written
        in one transaction.
        """
        cleaned: List[Dict[str, str]] = []
        for i, raw in enumerate(rows):
            if not isinstance(raw, Mapping):
                raise ValidationError(f"row {i} is not an object", details={"row": i})
            cleaned.append({
                "title": _require_text(raw.get("title"), "title", row=i),
                "content": _require_text(raw.get("content"), "content", row=i),
                "category": _category_or_default(raw.get("category"), row=i),
            })
        if not cleaned:
            return 0
        with self._write_lock:
            try:
                with self._session_factory() as session, session.begin():
                    now = _utcnow()
                    session.add_all([
                        PromptRow(created_at=now, updated_at=now, **fields) for fields in cleaned
                    ])
            except SQLAlchemyError as e:
                monitoring.inc_store_mutation("bulk_insert", "error")
                raise StorageError("bulk insert failed", details={"exception": str(e)}) from e
        monitoring.inc_store_mutation("bulk_insert", "ok")
        return len(cleaned)

    def seed_if_empty(self, rows: Sequence[Mapping[str, Any]] = SAMPLE_PROMPTS) -> int:
        with self._write_lock:
            if self.count() > 0:
                return 0
            inserted = self.bulk_insert(rows)
        monitoring.logger.info("Seeded sample prompts", extra={"count": inserted})
        return inserted

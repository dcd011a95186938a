# promptsync/db.py
import os
from typing import Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

# Default dev DB next to the working directory
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./prompts.db")

Base = declarative_base()


def _make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def make_session_factory(url: str = None) -> Tuple[Engine, sessionmaker]:
    """Build an engine and its session factory. Each store owns its own pair."""
    engine = _make_engine(url or DATABASE_URL)
    return engine, sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine):
    # Create tables if they don't exist
    import promptsync.models as models  # noqa: F841
    Base.metadata.create_all(bind=engine)

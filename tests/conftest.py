# tests/conftest.py
"""
Shared fixtures: a disposable SQLite store per test, a TestClient bound to a
fresh app, and fake sockets for the realtime components.
"""
import os
import asyncio
import tempfile

# promptsync modules read these at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.gettempdir(), "promptsync_default.db"))
os.environ.setdefault("SEED_SAMPLE_DATA", "false")
os.environ.setdefault("LOG_AS_JSON", "false")

import pytest
from fastapi.testclient import TestClient

from promptsync.app import create_app
from promptsync.store import PromptStore


class FakeSocket:
    """Stand-in for a WebSocket: records frames, can fail or hang on send."""

    def __init__(self, fail: bool = False, hang: bool = False):
        self.fail = fail
        self.hang = hang
        self.sent = []
        self.closed = False

    async def send_text(self, text: str):
        if self.closed:
            raise RuntimeError("socket closed")
        if self.fail:
            raise ConnectionResetError("broken pipe")
        if self.hang:
            await asyncio.sleep(3600)
        self.sent.append(text)

    async def close(self, code: int = 1000):
        self.closed = True


@pytest.fixture
def socket_factory():
    return FakeSocket


@pytest.fixture
def store(tmp_path):
    s = PromptStore(f"sqlite:///{tmp_path / 'prompts.db'}")
    yield s
    s.close()


@pytest.fixture
def client(store):
    app = create_app(store=store, seed_sample_data=False)
    with TestClient(app) as c:
        yield c

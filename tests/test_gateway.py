# tests/test_gateway.py
"""
Mutation-to-broadcast wiring: only committed changes are published.
"""
import asyncio
import json
import time

import pytest

from promptsync.errors import MalformedInputError, NotFoundError, ValidationError
from promptsync.realtime.gateway import SyncGateway
from promptsync.realtime.heartbeat import LivenessState
from promptsync.store import PromptStore


def _frames(sock):
    return [json.loads(t) for t in sock.sent]


@pytest.fixture
def gateway(store):
    return SyncGateway(store, heartbeat_interval=30, send_timeout=0.05)


def test_connect_registers_and_sends_snapshot(gateway, store, socket_factory):
    store.create("T", "C")
    sock = socket_factory()
    conn = asyncio.run(gateway.connect(sock))
    assert conn in gateway.registry
    assert gateway.heartbeat.state_of(conn) is LivenessState.ALIVE
    frames = _frames(sock)
    assert len(frames) == 1
    assert frames[0]["type"] == "initial_data"
    assert [p["title"] for p in frames[0]["data"]] == ["T"]


def test_create_publishes_created_record_to_all(gateway, store, socket_factory):
    socks = [socket_factory(), socket_factory()]

    async def scenario():
        for s in socks:
            await gateway.connect(s)
        return await gateway.create_prompt("T", "C")

    prompt = asyncio.run(scenario())
    assert store.list() == [prompt]
    events = [_frames(s)[1] for s in socks]
    assert events[0] == events[1]
    assert events[0]["type"] == "prompt_created"
    assert events[0]["data"]["id"] == prompt.id
    assert events[0]["data"]["category"] == "General"


def test_failed_mutations_publish_nothing(gateway, socket_factory):
    sock = socket_factory()

    async def scenario():
        await gateway.connect(sock)
        with pytest.raises(ValidationError):
            await gateway.create_prompt("", "C")
        with pytest.raises(NotFoundError):
            await gateway.update_prompt(99, "T", "C", "X")
        with pytest.raises(ValidationError):
            await gateway.import_prompts([{"title": "a", "content": "c"}, {"title": "b"}])
        with pytest.raises(MalformedInputError):
            await gateway.import_prompts({"title": "a", "content": "c"})

    asyncio.run(scenario())
    assert [f["type"] for f in _frames(sock)] == ["initial_data"]


def test_noop_delete_publishes_nothing(gateway, store, socket_factory):
    sock = socket_factory()
    p = store.create("T", "C")

    async def scenario():
        await gateway.connect(sock)
        assert await gateway.delete_prompt(12345) is False
        assert await gateway.delete_prompt(p.id) is True

    asyncio.run(scenario())
    frames = _frames(sock)
    assert [f["type"] for f in frames] == ["initial_data", "prompt_deleted"]
    assert frames[1]["data"] == {"id": p.id}


def test_import_publishes_count(gateway, store, socket_factory):
    sock = socket_factory()

    async def scenario():
        await gateway.connect(sock)
        return await gateway.import_prompts([{"title": f"t{i}", "content": "c"} for i in range(5)])

    assert asyncio.run(scenario()) == 5
    assert store.count() == 5
    assert _frames(sock)[-1] == {"type": "prompts_imported", "data": {"count": 5}}


def test_pong_restores_suspect_connection(gateway, socket_factory):
    sock = socket_factory()

    async def scenario():
        conn = await gateway.connect(sock)
        await gateway.heartbeat.tick()
        assert gateway.heartbeat.state_of(conn) is LivenessState.SUSPECT
        gateway.handle_message(conn, "not json")
        gateway.handle_message(conn, json.dumps({"type": "hello"}))
        assert gateway.heartbeat.state_of(conn) is LivenessState.SUSPECT
        gateway.handle_message(conn, json.dumps({"type": "pong"}))
        assert gateway.heartbeat.state_of(conn) is LivenessState.ALIVE
        await gateway.heartbeat.tick()
        return conn

    conn = asyncio.run(scenario())
    assert conn in gateway.registry


def test_snapshot_failure_drops_connection(gateway, socket_factory):
    conn = asyncio.run(gateway.connect(socket_factory(fail=True)))
    assert conn.closed
    assert conn not in gateway.registry


class SlowListStore(PromptStore):
    def list(self):
        time.sleep(0.3)
        return super().list()


def test_snapshot_reaches_new_connection_before_concurrent_events(tmp_path, socket_factory):
    slow_store = SlowListStore(f"sqlite:///{tmp_path / 'slow.db'}")
    gateway = SyncGateway(slow_store, heartbeat_interval=30, send_timeout=1)
    sock = socket_factory()

    async def scenario():
        connecting = asyncio.ensure_future(gateway.connect(sock))
        await asyncio.sleep(0.1)
        await gateway.create_prompt("T", "C")
        await connecting

    asyncio.run(scenario())
    slow_store.close()
    assert [f["type"] for f in _frames(sock)] == ["initial_data", "prompt_created"]

# tests/test_registry.py
import asyncio

from promptsync.realtime.connection import Connection
from promptsync.realtime.registry import ConnectionRegistry


def test_add_remove_is_idempotent(socket_factory):
    reg = ConnectionRegistry()
    c = Connection(socket_factory())
    reg.add(c)
    assert c in reg and len(reg) == 1
    assert reg.remove(c) is True
    assert reg.remove(c) is False
    assert len(reg) == 0


def test_for_each_skips_members_removed_mid_iteration(socket_factory):
    reg = ConnectionRegistry()
    first, second = Connection(socket_factory()), Connection(socket_factory())
    reg.add(first)
    reg.add(second)
    visited = []

    async def fn(conn):
        visited.append(conn)
        reg.remove(second if conn is first else first)

    asyncio.run(reg.for_each(fn))
    assert len(visited) == 1


def test_for_each_failure_does_not_skip_others(socket_factory):
    reg = ConnectionRegistry()
    conns = [Connection(socket_factory()) for _ in range(3)]
    for c in conns:
        reg.add(c)
    visited = []

    async def fn(conn):
        if conn is conns[0]:
            raise RuntimeError("boom")
        visited.append(conn)

    failures = asyncio.run(reg.for_each(fn))
    assert [c for c, _ in failures] == [conns[0]]
    assert set(visited) == set(conns[1:])


def test_snapshot_is_detached(socket_factory):
    reg = ConnectionRegistry()
    c = Connection(socket_factory())
    reg.add(c)
    snap = reg.snapshot()
    reg.remove(c)
    assert snap == (c,)
    assert reg.snapshot() == ()

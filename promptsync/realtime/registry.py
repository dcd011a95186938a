# promptsync/realtime/registry.py
import asyncio
import threading
from typing import Awaitable, Callable, Dict, List, Tuple

from promptsync import monitoring
from promptsync.realtime.connection import Connection


class ConnectionRegistry:
    """
    Lock-guarded set of live connections.

    Iteration always works on a point-in-time snapshot so members can be
    removed concurrently (heartbeat eviction, disconnects, failed sends).
    """

    def __init__(self):
        self._members: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    def add(self, connection: Connection) -> None:
        with self._lock:
            self._members[connection.id] = connection
            size = len(self._members)
        monitoring.set_active_connections(size)

    def remove(self, connection: Connection) -> bool:
        """Remove a member. Returns False when it was not registered."""
        with self._lock:
            removed = self._members.pop(connection.id, None) is not None
            size = len(self._members)
        if removed:
            monitoring.set_active_connections(size)
        return removed

    def snapshot(self) -> Tuple[Connection, ...]:
        with self._lock:
            return tuple(self._members.values())

    def __contains__(self, connection: Connection) -> bool:
        with self._lock:
            return connection.id in self._members

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    async def for_each(self, fn: Callable[[Connection], Awaitable[None]]) -> List[Tuple[Connection, BaseException]]:
        """
        Apply `fn` concurrently to every member of the current snapshot.

        Members removed before their call starts are skipped. Returns the
        (connection, exception) pairs for calls that failed.
        """
        async def _guarded(conn: Connection) -> None:
            if conn not in self:
                return
            await fn(conn)

        members = self.snapshot()
        results = await asyncio.gather(*(_guarded(c) for c in members), return_exceptions=True)
        failures = []
        for conn, result in zip(members, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                failures.append((conn, result))
        return failures

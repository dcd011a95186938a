# promptsync/realtime/heartbeat.py
"""
Heartbeat-based liveness detection.

Each tracked connection is ALIVE or SUSPECT; EVICTED is terminal. One
background task runs a cycle every `interval` seconds:

- SUSPECT connections (no pong since the previous probe) are evicted: their
  channel is closed and they leave the registry.
- every other connection becomes SUSPECT and receives a ping frame.

A pong moves SUSPECT back to ALIVE. An unresponsive connection is therefore
evicted on the second cycle after it was last heard from, i.e. within one to
two intervals.
"""
import asyncio
import threading
from enum import Enum
from typing import Dict, List, Optional

from promptsync import monitoring
from promptsync.realtime.connection import Connection
from promptsync.realtime.events import PING_FRAME
from promptsync.realtime.registry import ConnectionRegistry

DEFAULT_INTERVAL_SECONDS = 30.0


class LivenessState(str, Enum):
    ALIVE = "alive"
    SUSPECT = "suspect"
    EVICTED = "evicted"


class HeartbeatMonitor:
    def __init__(self, registry: ConnectionRegistry, interval: float = DEFAULT_INTERVAL_SECONDS):
        if interval <= 0:
            raise ValueError("heartbeat interval must be positive")
        self.registry = registry
        self.interval = interval
        self._states: Dict[str, LivenessState] = {}
        self._lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None

    # --- transitions driven by the gateway
    def track(self, connection: Connection) -> None:
        with self._lock:
            self._states[connection.id] = LivenessState.ALIVE

    def acknowledge(self, connection: Connection) -> bool:
        """Record a pong. Ignored for evicted or untracked connections."""
        with self._lock:
            if self._states.get(connection.id) is None:
                return False
            self._states[connection.id] = LivenessState.ALIVE
            return True

    def forget(self, connection: Connection) -> None:
        with self._lock:
            self._states.pop(connection.id, None)

    def state_of(self, connection: Connection) -> LivenessState:
        with self._lock:
            return self._states.get(connection.id, LivenessState.EVICTED)

    # --- one cycle
    async def tick(self) -> List[Connection]:
        """Run one heartbeat cycle. Returns the connections evicted by it."""
        members = self.registry.snapshot()
        to_evict: List[Connection] = []
        to_probe: List[Connection] = []
        with self._lock:
            live_ids = {c.id for c in members}
            for stale in [cid for cid in self._states if cid not in live_ids]:
                # removed elsewhere (disconnect, failed broadcast)
                del self._states[stale]
            for conn in members:
                state = self._states.get(conn.id)
                if state is None:
                    continue
                if state is LivenessState.SUSPECT:
                    del self._states[conn.id]
                    to_evict.append(conn)
                else:
                    self._states[conn.id] = LivenessState.SUSPECT
                    to_probe.append(conn)

        for conn in to_evict:
            if self.registry.remove(conn):
                monitoring.inc_heartbeat_eviction()
                monitoring.logger.info("Evicted unresponsive connection",
                                       extra={"connection_id": conn.id, "connections": len(self.registry)})
        if to_evict:
            await asyncio.gather(*(conn.close() for conn in to_evict))

        if to_probe:
            results = await asyncio.gather(*(self._probe(conn) for conn in to_probe), return_exceptions=True)
            for conn, result in zip(to_probe, results):
                if isinstance(result, Exception):
                    # stays SUSPECT, evicted next cycle unless a pong arrives
                    monitoring.inc_probe_failure()
                    monitoring.logger.debug("Probe send failed",
                                            extra={"connection_id": conn.id, "error": repr(result)})
        return to_evict

    async def _probe(self, conn: Connection) -> None:
        if conn not in self.registry:
            return
        await conn.send(PING_FRAME)

    # --- background task
    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception:
                monitoring.logger.exception("Heartbeat cycle failed")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run(), name="heartbeat-monitor")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

# promptsync/realtime/gateway.py
import json
from typing import Any, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from promptsync import monitoring
from promptsync.errors import MalformedInputError
from promptsync.realtime.broadcaster import Broadcaster
from promptsync.realtime.connection import Connection
from promptsync.realtime.events import PONG_TYPE, SyncEvent
from promptsync.realtime.heartbeat import DEFAULT_INTERVAL_SECONDS, HeartbeatMonitor
from promptsync.realtime.registry import ConnectionRegistry
from promptsync.schemas import Prompt
from promptsync.store import PromptStore


class SyncGateway:
    """
    Wires the store to the live channel.

    Mutations go through the store first; only a committed result is turned
    into an event and published. Store calls run in the threadpool so the
    event loop keeps serving sockets and heartbeats meanwhile.
    """

    def __init__(self, store: PromptStore, heartbeat_interval: float = DEFAULT_INTERVAL_SECONDS,
                 send_timeout: float = 5.0):
        self.store = store
        self.send_timeout = send_timeout
        self.registry = ConnectionRegistry()
        self.heartbeat = HeartbeatMonitor(self.registry, interval=heartbeat_interval)
        self.broadcaster = Broadcaster(self.registry)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    async def connect(self, socket: Any) -> Connection:
        """Register an accepted socket and send it the current snapshot."""
        connection = Connection(socket, send_timeout=self.send_timeout)
        failed = False
        # events published meanwhile wait for the snapshot to go out first
        async with connection.exclusive() as send_first:
            self.heartbeat.track(connection)
            self.registry.add(connection)
            monitoring.logger.info("Client connected",
                                   extra={"connection_id": connection.id, "connections": len(self.registry)})
            try:
                prompts = await run_in_threadpool(self.store.list)
                await send_first(SyncEvent.snapshot(prompts).to_json())
            except Exception as e:
                monitoring.logger.warning("Snapshot send failed",
                                          extra={"connection_id": connection.id, "error": repr(e)})
                failed = True
        if failed:
            await self.disconnect(connection)
        return connection

    async def disconnect(self, connection: Connection) -> None:
        removed = self.registry.remove(connection)
        self.heartbeat.forget(connection)
        await connection.close()
        if removed:
            monitoring.logger.info("Client disconnected",
                                   extra={"connection_id": connection.id, "connections": len(self.registry)})

    def handle_message(self, connection: Connection, text: str) -> None:
        """Handle one inbound frame. Only probe responses are meaningful."""
        try:
            message = json.loads(text)
        except (TypeError, ValueError):
            monitoring.logger.debug("Ignoring malformed frame", extra={"connection_id": connection.id})
            return
        if isinstance(message, dict) and message.get("type") == PONG_TYPE:
            self.heartbeat.acknowledge(connection)
            return
        monitoring.logger.debug("Ignoring unknown frame", extra={"connection_id": connection.id})

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def create_prompt(self, title: Any, content: Any, category: Any = None) -> Prompt:
        prompt = await run_in_threadpool(self.store.create, title, content, category)
        await self.broadcaster.publish(SyncEvent.created(prompt))
        return prompt

    async def update_prompt(self, prompt_id: int, title: Any, content: Any, category: Any) -> Prompt:
        prompt = await run_in_threadpool(self.store.update, prompt_id, title, content, category)
        await self.broadcaster.publish(SyncEvent.updated(prompt))
        return prompt

    async def delete_prompt(self, prompt_id: int) -> bool:
        deleted = await run_in_threadpool(self.store.delete, prompt_id)
        if deleted:
            await self.broadcaster.publish(SyncEvent.deleted(prompt_id))
        return deleted

    async def import_prompts(self, rows: Optional[Sequence[Any]]) -> int:
        if not isinstance(rows, list):
            raise MalformedInputError("Import body must be a JSON array")
        count = await run_in_threadpool(self.store.bulk_insert, rows)
        if count:
            await self.broadcaster.publish(SyncEvent.imported(count))
        return count

    # ------------------------------------------------------------------
    # Background monitor
    # ------------------------------------------------------------------
    def start(self) -> None:
        self.heartbeat.start()

    async def stop(self) -> None:
        await self.heartbeat.stop()
        for connection in self.registry.snapshot():
            await self.disconnect(connection)

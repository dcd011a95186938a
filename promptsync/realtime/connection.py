# promptsync/realtime/connection.py
import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from promptsync import monitoring


class Connection:
    """
    One live viewer channel.

    Wraps any socket exposing awaitable `send_text(str)` and `close()`
    (a Starlette/FastAPI WebSocket in production, a fake in tests). Liveness
    state is not kept here; the HeartbeatMonitor owns it.

    Sends are serialized per connection. While `exclusive()` is held (the
    initial snapshot), broadcasts and probes queue behind it.
    """

    def __init__(self, socket: Any, send_timeout: float = 5.0):
        self.id = uuid.uuid4().hex
        self.socket = socket
        self.send_timeout = send_timeout
        self._closed = False
        self._send_lock = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, payload: str) -> None:
        """Send one text frame; raises on failure or when the send timeout elapses."""
        async with self._send_lock:
            await self._send_now(payload)

    async def _send_now(self, payload: str) -> None:
        if self._closed:
            raise ConnectionError(f"connection {self.id} is closed")
        await asyncio.wait_for(self.socket.send_text(payload), timeout=self.send_timeout)

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[Callable[[str], Awaitable[None]]]:
        """Hold back every other send; yields a send function usable inside the block."""
        async with self._send_lock:
            yield self._send_now

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await asyncio.wait_for(self.socket.close(), timeout=self.send_timeout)
        except Exception as e:
            # the peer may already be gone
            monitoring.logger.debug("Socket close failed", extra={"connection_id": self.id, "error": str(e)})

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, closed={self._closed})"

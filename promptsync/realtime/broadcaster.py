# promptsync/realtime/broadcaster.py
import asyncio

from promptsync import monitoring
from promptsync.realtime.events import SyncEvent
from promptsync.realtime.registry import ConnectionRegistry


class Broadcaster:
    """
    Stateless fan-out of one event to every registered connection.

    Delivery order across connections is unspecified. A connection whose send
    fails is removed from the registry and closed right away.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def publish(self, event: SyncEvent) -> int:
        payload = event.to_json()
        delivered = 0

        async def _send(conn):
            nonlocal delivered
            await conn.send(payload)
            delivered += 1

        failures = await self.registry.for_each(_send)
        for conn, exc in failures:
            monitoring.inc_delivery_failure()
            monitoring.logger.warning("Dropping connection after failed send",
                                      extra={"connection_id": conn.id, "event_type": event.type.value,
                                             "error": repr(exc)})
            self.registry.remove(conn)
        if failures:
            await asyncio.gather(*(conn.close() for conn, _ in failures))
        monitoring.inc_event_published(event.type.value)
        monitoring.logger.debug("Published event",
                                extra={"event_type": event.type.value, "delivered": delivered})
        return delivered

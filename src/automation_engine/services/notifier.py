"""Event broadcasting for automation changes and run completions.

This module provides the AutomationEventBroadcaster class which manages
asyncio.Queue instances for listeners (for example an SSE endpoint or a
websocket bridge), delivering ``{eventType, payload}`` envelopes.

Delivery is best-effort: publishing never blocks and never raises, and a slow
listener whose queue is full misses events rather than stalling the engine.
"""

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

AUTOMATION_RUN = "automationRun"
AUTOMATION_UPDATE = "automationUpdate"
AUTOMATION_REMOVED = "automationRemoved"
AUTOMATION_NOTIFICATION = "automationNotification"

Envelope = dict[str, Any]


class AutomationEventBroadcaster:
    """Manages listener queues for automation events.

    Example usage:
        queue = await broadcaster.register()
        try:
            while True:
                envelope = await queue.get()
                ...
        finally:
            await broadcaster.unregister(queue)
    """

    def __init__(self) -> None:
        self._listeners: list[asyncio.Queue[Envelope]] = []
        self._lock = asyncio.Lock()

    async def register(self, max_queue_size: int = 100) -> asyncio.Queue[Envelope]:
        """Register a new listener and return the queue it should consume."""
        async with self._lock:
            queue: asyncio.Queue[Envelope] = asyncio.Queue(maxsize=max_queue_size)
            self._listeners.append(queue)
            logger.debug(f"Registered listener, total listeners: {len(self._listeners)}")
            return queue

    async def unregister(self, queue: asyncio.Queue[Envelope]) -> None:
        async with self._lock:
            if queue in self._listeners:
                self._listeners.remove(queue)
                logger.debug(
                    f"Unregistered listener, remaining: {len(self._listeners)}"
                )

    def publish(self, event_type: str, payload: Any) -> None:  # noqa: ANN401
        """Deliver an envelope to every listener without blocking.

        Must be called from the thread running the event loop, since
        ``asyncio.Queue.put_nowait`` is not thread-safe.
        """
        envelope: Envelope = {"eventType": event_type, "payload": payload}

        # Snapshot so registration changes during delivery are harmless
        listeners = list(self._listeners)
        if not listeners:
            logger.debug(f"No listeners for {event_type}, skipping")
            return

        for queue in listeners:
            try:
                queue.put_nowait(envelope)
            except asyncio.QueueFull:
                logger.warning(f"Listener queue full, dropping {event_type} event")

    def get_listener_count(self) -> int:
        return len(self._listeners)

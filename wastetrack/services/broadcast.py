import asyncio
import logging
from typing import List, Optional

from fastapi import WebSocket

from wastetrack.models import BroadcastEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONNECTIONS = 100
DEFAULT_QUEUE_SIZE = 100


class Subscriber:
    """One connected viewer: its socket plus the bounded queue its sender drains."""

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.websocket = websocket
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def offer(self, message: dict):
        """
        Queues a message on the subscriber's own loop.
        When the viewer lags behind a full queue, the oldest pending event
        is dropped; the viewer sees the hole as a sequence gap.
        """
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
            logger.warning(f"Viewer is lagging; dropped oldest pending event ({self.dropped} so far).")
        self.queue.put_nowait(message)


class BroadcastChannel:
    """
    Fan-out of truckLocationUpdate events to every connected viewer.

    publish() never waits on a viewer. Events are handed to each
    subscriber's own event loop and queued there, so one connection sees
    events in the order they were published.
    """

    def __init__(self, max_connections: int = DEFAULT_MAX_CONNECTIONS, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.max_connections = max_connections
        self.queue_size = queue_size
        self.subscribers: List[Subscriber] = []

    async def connect(self, websocket: WebSocket) -> Optional[Subscriber]:
        if len(self.subscribers) >= self.max_connections:
            logger.warning("Viewer connection refused: connection limit reached.")
            await websocket.close(code=1013, reason="Connection limit reached")
            return None
        await websocket.accept()
        subscriber = Subscriber(websocket, asyncio.get_running_loop(), self.queue_size)
        self.subscribers.append(subscriber)
        logger.info(f"Viewer connected. {len(self.subscribers)} viewer(s) online.")
        return subscriber

    def disconnect(self, subscriber: Subscriber):
        if subscriber in self.subscribers:
            self.subscribers.remove(subscriber)
            logger.info(f"Viewer disconnected. {len(self.subscribers)} viewer(s) online.")

    def publish(self, event: BroadcastEvent) -> int:
        """Queues the event for every subscriber and returns how many were reached."""
        message = event.envelope()
        delivered = 0
        for subscriber in list(self.subscribers):
            try:
                subscriber.loop.call_soon_threadsafe(subscriber.offer, message)
                delivered += 1
            except RuntimeError:
                # Loop already closed; the socket is gone.
                logger.warning("Dropping subscriber whose event loop is closed.")
                self.disconnect(subscriber)
        logger.debug(f"Broadcast {event.truckId} seq={event.sequence} to {delivered} viewer(s).")
        return delivered

    async def forward(self, subscriber: Subscriber):
        """Sends queued events to the subscriber's socket until cancelled."""
        while True:
            message = await subscriber.queue.get()
            await subscriber.websocket.send_json(message)

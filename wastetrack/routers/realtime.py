import asyncio
import contextlib
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from wastetrack.services.broadcast import BroadcastChannel

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws/trucks")
async def truck_updates_websocket(websocket: WebSocket):
    channel: BroadcastChannel = websocket.app.state.channel
    subscriber = await channel.connect(websocket)
    if subscriber is None:
        # Connection limit reached
        return

    sender = asyncio.create_task(channel.forward(subscriber))
    try:
        # Viewers have nothing to say; reading only detects the disconnect.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        channel.disconnect(subscriber)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            await sender

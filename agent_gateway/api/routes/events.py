"""
WebSocket event channel.

A client first receives the ``config``, ``messages``, ``tools`` and
``mcpServers`` snapshots, then every live event, each as
``{"event": <type>, "data": <payload>}``.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...events import Event

logger = logging.getLogger(__name__)

router = APIRouter()


def serialize_event(event: Event) -> dict:
    payload: Any = event.payload
    if hasattr(payload, "to_json"):
        payload = payload.to_json()
    return {"event": event.type, "data": payload}


async def _forward(websocket: WebSocket, queue: asyncio.Queue) -> None:
    """Send queued events until the socket stops accepting them."""
    while True:
        event = await queue.get()
        try:
            await websocket.send_json(serialize_event(event))
        except (WebSocketDisconnect, RuntimeError) as e:
            # Client went away between events; the receive side cleans up
            logger.debug(f"Event channel send stopped: {e!r}")
            return


@router.websocket("/ws")
async def event_channel(websocket: WebSocket) -> None:
    context = getattr(websocket.app.state, "context", None)
    if context is None or context.closed:
        await websocket.close(code=1013)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    # Events are published from worker threads
    def listener(event: Event) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    subscription = context.attach(listener)
    forwarder = asyncio.create_task(_forward(websocket, queue))
    logger.debug("Event channel client connected")
    try:
        # Clients do not send anything; this only waits for the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Event channel client disconnected")
    finally:
        subscription.unsubscribe()
        forwarder.cancel()
        await asyncio.gather(forwarder, return_exceptions=True)

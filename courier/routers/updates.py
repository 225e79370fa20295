import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["updates"])


async def _forward(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        payload = await queue.get()
        await websocket.send_json(payload)


@router.websocket("/ws/updates")
async def ws_updates(websocket: WebSocket):
    """
    Push every domain event to the connected client as JSON.

    Bus handlers run on whichever thread published, so events are handed to
    this connection's loop with ``call_soon_threadsafe``. The subscription is
    dropped when the client disconnects.
    """
    bus = websocket.app.state.services.bus
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    # subscribe before accept so nothing published after the handshake is missed
    unsubscribe = bus.subscribe(lambda event: loop.call_soon_threadsafe(queue.put_nowait, event.to_dict()))
    await websocket.accept()
    sender = asyncio.create_task(_forward(websocket, queue))
    try:
        while True:
            # keep alive (client can send pings)
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        sender.cancel()
        logger.debug("update stream closed")

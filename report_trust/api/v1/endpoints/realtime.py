"""
Live change feed over WebSocket.

Each connection subscribes to the change notifier and receives every event as
``{"type": <event>, "data": <report>}``. Events are published from whichever
thread committed the mutation, so they are handed to the connection's event
loop through a bounded queue. A slow client loses events beyond the buffer;
clients recover with a full read.
"""
import asyncio
from typing import Any, Dict
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from report_trust.config import NOTIFIER_SETTINGS
from report_trust.services.notifier import change_notifier
from report_trust.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


def _offer(queue: "asyncio.Queue[Dict[str, Any]]", message: Dict[str, Any]) -> None:
    try:
        queue.put_nowait(message)
    except asyncio.QueueFull:
        logger.warning("WebSocket buffer full; dropping event", event_type=message.get("type"))


async def _pump(websocket: WebSocket, queue: "asyncio.Queue[Dict[str, Any]]") -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _listen(websocket: WebSocket) -> None:
    while True:
        text = await websocket.receive_text()
        if text.strip().lower() == "ping":
            await websocket.send_json({"type": "pong", "data": None})


@router.websocket("/ws")
async def change_feed(websocket: WebSocket):
    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(
        maxsize=int(NOTIFIER_SETTINGS["websocket_buffer"])  # type: ignore[arg-type]
    )

    def forward(message: Dict[str, Any]) -> None:
        # raising makes the notifier drop this subscriber
        if loop.is_closed():
            raise RuntimeError("WebSocket event loop closed")
        loop.call_soon_threadsafe(_offer, queue, message)

    token = change_notifier.subscribe(forward)
    logger.info("WebSocket client connected", token=token, subscribers=change_notifier.subscriber_count())
    await websocket.send_json({"type": "connected", "data": {"subscribers": change_notifier.subscriber_count()}})

    pump = asyncio.create_task(_pump(websocket, queue))
    listen = asyncio.create_task(_listen(websocket))
    try:
        done, pending = await asyncio.wait({pump, listen}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("WebSocket connection error", token=token, error=str(exc))
    finally:
        change_notifier.unsubscribe(token)
        logger.info("WebSocket client disconnected", token=token)

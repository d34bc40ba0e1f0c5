"""
WebSocket Router
Pushes upload progress and processing-state changes to connected coaches.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..config import get_settings
from ..models.video_asset import VideoAsset
from ..utils.logger import get_logger

router = APIRouter()
logger = get_logger()

Event = Dict[str, Any]


class EventHub:
    """
    Fans events out to one bounded queue per connected client.

    Publishing never blocks: a slow client loses its oldest queued event.
    Events published from worker threads are handed to the hub's loop.
    """

    def __init__(self, queue_size: int = 500):
        self.queue_size = queue_size
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._queues: Dict[WebSocket, asyncio.Queue] = {}

    def __len__(self) -> int:
        return len(self._queues)

    def subscribe(self, websocket: WebSocket) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._queues[websocket] = queue
        return queue

    def unsubscribe(self, websocket: WebSocket):
        self._queues.pop(websocket, None)

    def publish(self, event: Event):
        if self.loop is not None and self.loop.is_running():
            self.loop.call_soon_threadsafe(self._fan_out, event)
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"Dropping {event.get('type')} event; no running event loop")
            return
        self._fan_out(event)

    def _fan_out(self, event: Event):
        for queue in list(self._queues.values()):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)


hub = EventHub()


def set_broadcast_loop(loop: asyncio.AbstractEventLoop):
    """Bind the hub to the server loop so worker threads can publish."""
    hub.loop = loop


def _client_api_key(websocket: WebSocket) -> str:
    api_key = websocket.headers.get("x-api-key", "").strip()
    if api_key:
        return api_key
    scheme, _, token = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    # Browsers cannot set headers on a WebSocket handshake
    return websocket.query_params.get("token", "").strip()


async def _pump_events(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        await websocket.send_json(await queue.get())


async def _answer_pings(websocket: WebSocket):
    while True:
        raw = await websocket.receive_text()
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON WebSocket message")
            continue
        if isinstance(message, dict) and message.get("type") == "ping":
            await websocket.send_json({"type": "pong"})


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Stream upload and processing events until the client disconnects."""
    api_key = get_settings().api_key
    if api_key and _client_api_key(websocket) != api_key:
        await websocket.close(code=1008, reason="Unauthorized")
        return

    await websocket.accept()
    queue = hub.subscribe(websocket)
    logger.info(f"WebSocket connected. Total: {len(hub)}")

    tasks = [
        asyncio.create_task(_pump_events(websocket, queue)),
        asyncio.create_task(_answer_pings(websocket)),
    ]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error(f"WebSocket task error: {exc}")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        hub.unsubscribe(websocket)
        logger.info(f"WebSocket removed. Total: {len(hub)}")


def broadcast_upload_progress(game_id: str, progress: int):
    """Publish an upload percentage for a game."""
    hub.publish({
        "type": "upload_progress",
        "data": {"game_id": game_id, "progress": progress},
    })


def broadcast_processing_state(asset: VideoAsset):
    """Publish a committed processing-state transition."""
    hub.publish({
        "type": "processing_state",
        "data": {
            "asset_id": asset.id,
            "game_id": asset.game_id,
            "state": asset.state.value,
            "failure_reason": asset.failure_reason,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    })

# backend/services/avatar_relay.py
"""
Talking-Avatar Socket Relay

Bridges the browser's WebSocket to the avatar platform's WebSocket. Frames
flow both ways unchanged except for the inbound filter:

- only JSON objects whose ``type`` is one of ALLOWED_TYPES are forwarded
- any ``authorization`` key (top level or inside ``payload``) is removed
- everything else is dropped silently

Both legs share one lifetime: when either side closes, the other pump is
cancelled and both sockets are closed. There is no buffering, backpressure
or reconnection.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import websockets
from fastapi import WebSocketDisconnect

logger = logging.getLogger(__name__)

ALLOWED_TYPES = frozenset({
    "init-stream",
    "sdp",
    "ice",
    "stream-audio",
    "stream-text",
    "delete-stream",
})


def _strip_authorization(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if str(k).lower() != "authorization"}


def filter_inbound_frame(raw: Any) -> Optional[str]:
    """
    Returns:
        The frame to forward upstream (re-serialized JSON), or None to drop it
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(raw, str):
        return None

    try:
        frame = json.loads(raw)
    except ValueError:
        return None

    if not isinstance(frame, dict) or frame.get("type") not in ALLOWED_TYPES:
        return None

    frame = _strip_authorization(frame)
    if isinstance(frame.get("payload"), dict):
        frame["payload"] = _strip_authorization(frame["payload"])
    return json.dumps(frame)


def upstream_url(ws_url: str, api_key: str) -> str:
    return f"{ws_url}?authorization={quote('Basic ' + api_key)}"


async def connect_upstream(ws_url: str, api_key: str):
    """Open the platform socket (a ``websockets`` client connection)."""
    return await websockets.connect(upstream_url(ws_url, api_key))


class AvatarRelay:
    """
    Pumps frames between the two sockets until one of them closes.

    Attributes:
        client: Browser side (FastAPI/Starlette WebSocket, already accepted)
        upstream: Platform side (websockets client connection)
        forwarded / dropped: Inbound frame counters
    """

    def __init__(self, client, upstream):
        self.client = client
        self.upstream = upstream
        self.forwarded = 0
        self.dropped = 0

    async def client_to_upstream(self) -> None:
        while True:
            message = await self.client.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # Browsers may send binary frames; those go through the same filter
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            frame = filter_inbound_frame(raw)
            if frame is None:
                self.dropped += 1
                continue
            await self.upstream.send(frame)
            self.forwarded += 1

    async def upstream_to_client(self) -> None:
        async for message in self.upstream:
            if isinstance(message, bytes):
                message = message.decode("utf-8", errors="replace")
            await self.client.send_text(message)

    async def run(self) -> None:
        tasks = [
            asyncio.create_task(self.client_to_upstream()),
            asyncio.create_task(self.upstream_to_client()),
        ]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.info("Avatar relay leg closed: %r", task.exception())

        await self.close()
        logger.info(
            "Avatar relay finished: %d frames forwarded, %d dropped",
            self.forwarded, self.dropped,
        )

    async def close(self) -> None:
        await self.upstream.close()
        try:
            await self.client.close()
        except (RuntimeError, WebSocketDisconnect):
            # Browser already disconnected; nothing left to close
            pass

"""Websocket channel used to push commands (reload, devMenu) to clients."""
from __future__ import annotations

import asyncio
import json
import logging

from aiohttp import WSMsgType, web

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 2


class MessageSocket:
    def __init__(self) -> None:
        self._clients: set[web.WebSocketResponse] = set()
        self._pending: set[asyncio.Task] = set()

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._clients.add(ws)
        logger.debug("Message socket client connected (%d total)", len(self._clients))
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self._relay(ws, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.debug("Message socket error: %s", ws.exception())
        finally:
            self._clients.discard(ws)
            logger.debug("Message socket client disconnected")
        return ws

    def _relay(self, sender: web.WebSocketResponse, data: str) -> None:
        """Forward a client broadcast to every other client."""
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Dropping malformed message socket frame")
            return
        if not isinstance(message, dict) or "method" not in message:
            return
        self._send_all(json.dumps(message), exclude=sender)

    def broadcast(self, method: str, params: dict | None = None) -> None:
        """Queue ``{"version": 2, "method": ..., "params": ...}`` to all clients."""
        payload = {"version": PROTOCOL_VERSION, "method": method}
        if params is not None:
            payload["params"] = params
        logger.debug("Broadcasting %s to %d client(s)", method, len(self._clients))
        self._send_all(json.dumps(payload))

    def _send_all(self, text: str, exclude: web.WebSocketResponse | None = None) -> None:
        for ws in list(self._clients):
            if ws is exclude or ws.closed:
                continue
            task = asyncio.get_running_loop().create_task(self._send(ws, text))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _send(self, ws: web.WebSocketResponse, text: str) -> None:
        try:
            await ws.send_str(text)
        except (ConnectionResetError, RuntimeError) as e:
            logger.debug("Dropping message socket client: %s", e)
            self._clients.discard(ws)

    async def close(self) -> None:
        for ws in list(self._clients):
            await ws.close()
        self._clients.clear()

"""CDP JSON-RPC over a single WebSocket.

One ``CDPTransport`` owns one socket. Commands are pipelined: each ``send``
gets a fresh id and a future, and the read loop settles futures strictly by
id. Frames without an id are events and go to the ``EventBus``.
"""

import asyncio
import json
import logging
from typing import Any

import aiohttp

from mailpilot.cdp.events import EventBus
from mailpilot.exceptions import (
    CDPProtocolError,
    CommandTimeoutError,
    ConnectionClosedError,
    TransportError,
)

logger = logging.getLogger(__name__)

MAX_MESSAGE_SIZE = 50 * 1024 * 1024


class CDPTransport:
    """Manages a WebSocket connection to a CDP target."""

    def __init__(self, ws_url: str, event_bus: EventBus | None = None, command_timeout: float = 30.0):
        self.ws_url = ws_url
        self.event_bus = event_bus or EventBus()
        self.command_timeout = command_timeout
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._http: aiohttp.ClientSession | None = None
        self._msg_id = 0
        self._pending: dict[int, tuple[str, asyncio.Future]] = {}
        self._reader_task: asyncio.Task | None = None
        self._closed = False
        self._released = False

    @classmethod
    async def connect(cls, ws_url: str, **kwargs: Any) -> "CDPTransport":
        transport = cls(ws_url, **kwargs)
        await transport.open()
        return transport

    @property
    def is_alive(self) -> bool:
        return (
            not self._closed
            and self._ws is not None
            and not self._ws.closed
            and self._reader_task is not None
            and not self._reader_task.done()
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def open(self) -> "CDPTransport":
        if self._closed:
            raise ConnectionClosedError("connection closed: transport cannot be reopened")
        self._http = aiohttp.ClientSession()
        try:
            self._ws = await self._http.ws_connect(self.ws_url, max_msg_size=MAX_MESSAGE_SIZE)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self._http.close()
            self._closed = True
            self._released = True
            raise TransportError(f"Could not open CDP socket {self.ws_url}: {e}") from e
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.debug(f"Opened CDP socket {self.ws_url}")
        return self

    async def send(self, method: str, params: dict[str, Any] | None = None, timeout: float | None = None) -> dict:
        """Send ``{id, method, params}`` and wait for the matching response's ``result``."""
        if self._closed or self._ws is None:
            raise ConnectionClosedError()

        self._msg_id += 1
        msg_id = self._msg_id
        message: dict[str, Any] = {"id": msg_id, "method": method}
        if params is not None:
            message["params"] = params

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = (method, future)

        try:
            logger.debug(f"-> {msg_id} {method}")
            await self._ws.send_json(message)
        except (ConnectionError, RuntimeError, aiohttp.ClientError) as e:
            self._pending.pop(msg_id, None)
            raise ConnectionClosedError(f"connection closed while sending {method}: {e}") from e

        timeout = self.command_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise CommandTimeoutError(method, timeout) from None
        finally:
            self._pending.pop(msg_id, None)

    async def close(self) -> None:
        """Close the socket and fail every pending request. Safe to call twice."""
        if not self._closed:
            self._closed = True
            self._fail_pending("connection closed")
        if self._released:
            return
        self._released = True

        if self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
        if self._ws is not None:
            await self._ws.close()
        if self._http is not None:
            await self._http.close()
        logger.debug(f"Closed CDP socket {self.ws_url}")

    async def _read_loop(self) -> None:
        assert self._ws is not None
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        frame = json.loads(msg.data)
                    except ValueError:
                        logger.warning(f"Dropping non-JSON CDP frame: {msg.data[:200]!r}")
                        continue
                    if not isinstance(frame, dict):
                        logger.warning(f"Dropping CDP frame that is not an object: {msg.data[:200]!r}")
                        continue
                    self._handle_frame(frame)
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.ERROR):
                    break
        finally:
            if not self._closed:
                logger.warning(f"CDP socket {self.ws_url} closed by remote")
                self._closed = True
                self._fail_pending("connection closed by remote")

    def _handle_frame(self, frame: dict[str, Any]) -> None:
        msg_id = frame.get("id")
        if msg_id is not None:
            entry = self._pending.pop(msg_id, None)
            if entry is None:
                logger.debug(f"<- {msg_id} (no pending request, dropped)")
                return
            method, future = entry
            if future.done():
                return
            if "error" in frame:
                logger.debug(f"<- {msg_id} {method} error")
                future.set_exception(CDPProtocolError(method, frame["error"] or {}))
            else:
                logger.debug(f"<- {msg_id} {method}")
                future.set_result(frame.get("result", {}))
            return

        method = frame.get("method")
        if method:
            logger.debug(f"<- event {method}")
            self.event_bus.dispatch(method, frame.get("params", {}))

    def _fail_pending(self, message: str) -> None:
        pending, self._pending = self._pending, {}
        for _, future in pending.values():
            if not future.done():
                future.set_exception(ConnectionClosedError(message))

    async def __aenter__(self) -> "CDPTransport":
        if self._ws is None:
            await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

"""Thin per-domain command builders over ``CDPTransport.send``.

Only the commands the automation layer actually uses are exposed. Each
command method is a single send with no added logic.
"""

from typing import Any

from mailpilot.cdp.events import EventCallback, Unsubscribe
from mailpilot.cdp.transport import CDPTransport


class Domain:
    name: str = ""

    def __init__(self, transport: CDPTransport):
        self._transport = transport

    async def _send(self, command: str, params: dict[str, Any] | None = None) -> dict:
        return await self._transport.send(f"{self.name}.{command}", params)

    def subscribe(self, event: str, callback: EventCallback) -> Unsubscribe:
        """Register ``callback`` for ``<Domain>.<event>``; returns an unsubscribe handle."""
        return self._transport.event_bus.on(f"{self.name}.{event}", callback)

    async def enable(self) -> dict:
        return await self._send("enable")


class RuntimeDomain(Domain):
    name = "Runtime"

    async def evaluate(self, params: dict[str, Any]) -> dict:
        return await self._send("evaluate", params)


class NetworkDomain(Domain):
    name = "Network"

    async def disable(self) -> dict:
        return await self._send("disable")

    async def get_response_body(self, request_id: str) -> dict:
        return await self._send("getResponseBody", {"requestId": request_id})

    def on_request_will_be_sent(self, callback: EventCallback) -> Unsubscribe:
        return self.subscribe("requestWillBeSent", callback)

    def on_response_received(self, callback: EventCallback) -> Unsubscribe:
        return self.subscribe("responseReceived", callback)

    def on_loading_finished(self, callback: EventCallback) -> Unsubscribe:
        return self.subscribe("loadingFinished", callback)


class InputDomain(Domain):
    name = "Input"

    async def dispatch_key_event(self, params: dict[str, Any]) -> dict:
        return await self._send("dispatchKeyEvent", params)

    async def dispatch_mouse_event(self, params: dict[str, Any]) -> dict:
        return await self._send("dispatchMouseEvent", params)

    async def insert_text(self, text: str) -> dict:
        return await self._send("insertText", {"text": text})


class PageDomain(Domain):
    name = "Page"

    async def bring_to_front(self) -> dict:
        return await self._send("bringToFront")

"""Shared fixtures: an in-process DevTools peer and an in-memory mail client.

``DevToolsPeer`` is a real WebSocket server (aiohttp) speaking the CDP frame
format, so transport and session tests exercise the actual socket code.

``FakeMailClient`` stands in for ``ComposeSurface``: it models the remote
application's compose registry with its own clock, so writes land a few calls
after they were made, early writes can be dropped, and compose windows appear
with a delay.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Sequence

import pytest
import pytest_asyncio
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from mailpilot.compose.service import ComposeAutomation
from mailpilot.compose.views import (
    RECIPIENT_FIELDS,
    ActionCandidates,
    DraftState,
    InvocationResult,
    Recipient,
)

APP_URL = "https://mail.example.com/inbox"
BACKGROUND_URL = "https://mail.example.com/background_page.html"


# DevTools peer


class DevToolsPeer:
    def __init__(self) -> None:
        self.received: list[dict] = []
        self.sockets: list[web.WebSocketResponse] = []
        self.responder: Callable[[web.WebSocketResponse, dict], Awaitable[None]] = self.echo
        self.ws_url = ""
        self.http_url = ""

    @staticmethod
    async def echo(ws: web.WebSocketResponse, frame: dict) -> None:
        await ws.send_json({"id": frame["id"], "result": {"echo": frame["method"]}})

    async def handle_socket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                frame = json.loads(msg.data)
                self.received.append(frame)
                await self.responder(ws, frame)
        return ws

    async def handle_listing(self, request: web.Request) -> web.Response:
        return web.json_response(
            [
                {"id": "BG", "type": "page", "url": BACKGROUND_URL, "webSocketDebuggerUrl": self.ws_url},
                {"id": "MAIN", "type": "page", "url": APP_URL, "title": "Inbox", "webSocketDebuggerUrl": self.ws_url},
            ]
        )

    def methods(self) -> list[str]:
        return [f["method"] for f in self.received]

    async def wait_for_frames(self, count: int, timeout: float = 2.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while len(self.received) < count:
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError(f"peer saw {len(self.received)} frames, expected {count}")
            await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def devtools_peer():
    peer = DevToolsPeer()
    app = web.Application()
    app.router.add_get("/json", peer.handle_listing)
    app.router.add_get("/devtools/page/MAIN", peer.handle_socket)
    server = TestServer(app)
    await server.start_server()
    peer.ws_url = str(server.make_url("/devtools/page/MAIN")).replace("http://", "ws://", 1)
    peer.http_url = str(server.make_url("/")).rstrip("/")
    yield peer
    for ws in peer.sockets:
        await ws.close()
    await server.close()


# In-memory mail client


DEFAULT_METHODS = frozenset(
    {"setSubject", "setBody", "_updateDraft", "_saveDraftAsync", "discard", "_discardDraftAsync", "_sendDraft"}
)


class FakeController:
    def __init__(self, key: str, methods: frozenset[str], thread_id: str | None = None):
        self.key = key
        self.methods = methods
        self.draft: dict[str, Any] = {
            "id": f"msg-{key}",
            "subject": "",
            "to": [],
            "cc": [],
            "bcc": [],
            "body": "",
            "dirty": False,
            "thread_id": thread_id,
        }


class FakeMailClient:
    """Implements the ``ComposeSurface`` interface against an in-memory registry.

    Every call advances a logical clock by one tick; scheduled changes apply
    when their tick is reached.
    """

    def __init__(
        self,
        *,
        open_latency: int = 2,
        write_latency: int = 1,
        save_latency: int = 2,
        drop_writes: int = 0,
        max_open: int | None = None,
        methods: frozenset[str] = DEFAULT_METHODS,
        failing_methods: dict[str, str] | None = None,
        rejected_triggers: int = 0,
    ):
        self.open_latency = open_latency
        self.write_latency = write_latency
        self.save_latency = save_latency
        self.drop_writes = drop_writes
        self.max_open = max_open
        self.methods = methods
        self.failing_methods = failing_methods or {}
        self.rejected_triggers = rejected_triggers
        self.controllers: dict[str, FakeController] = {}
        self.invocations: list[tuple[str, str]] = []
        self.triggered: list[str] = []
        self.selected_threads: list[str] = []
        self.tick = 0
        self._scheduled: list[tuple[int, Callable[[], None]]] = []
        self._counter = 0
        self._opening = 0
        self._selected_thread: str | None = None
        self._unreadable = 0

    async def _advance(self) -> None:
        await asyncio.sleep(0)
        self.tick += 1
        due = [fn for at, fn in self._scheduled if at <= self.tick]
        self._scheduled = [(at, fn) for at, fn in self._scheduled if at > self.tick]
        for fn in due:
            fn()

    def _schedule(self, delay: int, fn: Callable[[], None]) -> None:
        self._scheduled.append((self.tick + delay, fn))

    def discard_out_of_band(self, key: str) -> None:
        self.controllers.pop(key, None)

    def fail_next_reads(self, count: int) -> None:
        """Make the next ``count`` registry reads throw inside the page."""
        self._unreadable = count

    def _read_fails(self) -> bool:
        if self._unreadable > 0:
            self._unreadable -= 1
            return True
        return False

    # ComposeSurface interface

    async def list_draft_keys(self) -> list[str] | None:
        await self._advance()
        if self._read_fails():
            return None
        return list(self.controllers)

    async def has_draft(self, key: str) -> bool | None:
        keys = await self.list_draft_keys()
        if keys is None:
            return None
        return key in keys

    async def read_draft(self, key: str) -> DraftState | None:
        await self._advance()
        if self._read_fails():
            return None
        ctrl = self.controllers.get(key)
        if ctrl is None:
            return None
        return DraftState.model_validate({"key": key, **ctrl.draft})

    async def get_field(self, key: str, field: str) -> tuple[bool, Any]:
        await self._advance()
        ctrl = self.controllers.get(key)
        if ctrl is None:
            return False, None
        value = ctrl.draft.get(field)
        if field in RECIPIENT_FIELDS:
            return True, [Recipient.model_validate(r) for r in value or []]
        return True, value

    async def invoke(self, key: str, candidates: ActionCandidates, args: Sequence[Any] = ()) -> InvocationResult:
        await self._advance()
        ctrl = self.controllers.get(key)
        if ctrl is None:
            return InvocationResult(missing=True)
        for method in candidates.methods:
            if method.name not in ctrl.methods:
                continue
            self.invocations.append((key, method.name))
            if method.name in self.failing_methods:
                return InvocationResult(error=self.failing_methods[method.name])
            self._apply(ctrl, method.name, method.wrap, list(args))
            return InvocationResult(invoked=method.name)
        return InvocationResult()

    async def trigger_command(self, command_ids: Sequence[str], fallback_selector: str | None = None) -> str | None:
        await self._advance()
        if self.rejected_triggers > 0:
            self.rejected_triggers -= 1
            return None
        command = command_ids[0]
        self.triggered.append(command)
        if self.max_open is not None and len(self.controllers) + self._opening >= self.max_open:
            return command
        self._counter += 1
        key = f"draft{self._counter:04d}"
        thread_id = self._selected_thread if command != "COMPOSE" else None
        self._opening += 1

        def create() -> None:
            self._opening -= 1
            self.controllers[key] = FakeController(key, self.methods, thread_id)

        self._schedule(self.open_latency, create)
        return command

    async def select_thread(self, thread_id: str) -> bool:
        await self._advance()
        self.selected_threads.append(thread_id)
        self._selected_thread = thread_id
        return True

    # remote behaviour

    def _apply(self, ctrl: FakeController, name: str, wrap: str | None, args: list[Any]) -> None:
        if name in ("setSubject", "setBody", "_updateDraft"):
            field = wrap or ("subject" if name == "setSubject" else "body")
            value = args[0]
            if self.drop_writes > 0:
                self.drop_writes -= 1
                return

            def write() -> None:
                ctrl.draft[field] = value
                ctrl.draft["dirty"] = True

            self._schedule(self.write_latency, write)
        elif name in ("_saveDraftAsync", "saveDraft"):
            self._schedule(self.save_latency, lambda: ctrl.draft.update(dirty=False))
        elif name in ("discard", "_discardDraftAsync", "close", "_sendDraft", "sendDraft"):
            self.controllers.pop(ctrl.key, None)


@pytest.fixture
def mail_client() -> FakeMailClient:
    return FakeMailClient()


@pytest.fixture
def make_automation():
    def factory(client: FakeMailClient, **kwargs: Any) -> ComposeAutomation:
        kwargs.setdefault("poll_attempts", 6)
        kwargs.setdefault("poll_interval", 0)
        kwargs.setdefault("write_retries", 3)
        kwargs.setdefault("trigger_backoff", 0)
        return ComposeAutomation(client, **kwargs)  # type: ignore[arg-type]

    return factory

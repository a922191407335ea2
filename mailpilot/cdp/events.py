"""Per-event-name listener registry fed by the transport's read loop."""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], Any]
Unsubscribe = Callable[[], None]


class EventBus:
    """Delivers CDP events (``"Network.requestWillBeSent"`` etc.) to subscribers.

    Callbacks run synchronously in registration order while the frame is being
    processed. A callback that raises is logged and skipped; it never reaches
    the read loop. Coroutine callbacks are scheduled as tasks.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventCallback]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def on(self, event_name: str, callback: EventCallback) -> Unsubscribe:
        self._listeners[event_name].append(callback)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event_name)
            if listeners and callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))

    def dispatch(self, event_name: str, params: dict[str, Any]) -> None:
        for callback in list(self._listeners.get(event_name, ())):
            try:
                result = callback(params)
            except Exception:
                logger.exception(f"Listener {callback!r} for {event_name} raised")
                continue
            if inspect.isawaitable(result):
                self._track(event_name, result)

    def _track(self, event_name: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(f"Async listener for {event_name} failed", exc_info=t.exception())

        task.add_done_callback(_done)

    def clear(self) -> None:
        self._listeners.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

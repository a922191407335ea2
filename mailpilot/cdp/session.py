"""Connect/disconnect orchestration.

A ``CDPSession`` is one attachment to the application's foreground window:
one transport, one event bus and the domain proxies built on them. Calling
code awaits each operation before issuing the next; the session is not meant
to be shared between concurrent automation flows.
"""

import logging
from typing import Any

from mailpilot.cdp.domains import InputDomain, NetworkDomain, PageDomain, RuntimeDomain
from mailpilot.cdp.evaluator import RemoteEvaluator
from mailpilot.cdp.events import EventBus
from mailpilot.cdp.targets import find_primary_target
from mailpilot.cdp.transport import CDPTransport
from mailpilot.cdp.views import Target, TargetMatchRule
from mailpilot.config import CONFIG

logger = logging.getLogger(__name__)


class CDPSession:
    def __init__(self, target: Target, transport: CDPTransport):
        self.target = target
        self.transport = transport
        self.event_bus: EventBus = transport.event_bus
        self.runtime = RuntimeDomain(transport)
        self.network = NetworkDomain(transport)
        self.input = InputDomain(transport)
        self.page = PageDomain(transport)
        self.evaluator = RemoteEvaluator(self.runtime)

    @property
    def closed(self) -> bool:
        return self.transport.closed

    async def close(self) -> None:
        await self.transport.close()
        self.event_bus.clear()

    async def __aenter__(self) -> "CDPSession":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


async def connect(
    host_endpoint: str | None = None,
    *,
    rule: TargetMatchRule | None = None,
    attach_visible: bool = False,
    command_timeout: float | None = None,
) -> CDPSession | None:
    """Attach to the application's foreground window.

    Returns None when no matching target is listed; that is the ordinary
    "application not running" outcome. Discovery and socket failures raise.
    """
    host_endpoint = host_endpoint or CONFIG.host_endpoint()
    target = await find_primary_target(host_endpoint, rule or CONFIG.match_rule())
    if target is None:
        logger.info(f"No application window found at {host_endpoint}")
        return None

    transport = await CDPTransport.connect(
        target.socket_endpoint,
        event_bus=EventBus(),
        command_timeout=command_timeout or CONFIG.COMMAND_TIMEOUT,
    )
    session = CDPSession(target, transport)
    try:
        await session.runtime.enable()
        if attach_visible:
            await session.page.bring_to_front()
            await session.evaluator.evaluate("window.focus()")
    except BaseException:
        await session.close()
        raise

    logger.info(f"Attached to {target.url} ({target.id})")
    return session


async def disconnect(session: CDPSession | None) -> None:
    """Close ``session``; a no-op for None or an already closed session."""
    if session is None:
        return
    await session.close()
    logger.debug(f"Detached from {session.target.id}")

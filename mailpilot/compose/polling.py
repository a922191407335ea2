import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from mailpilot.compose.views import TimeoutExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll_until(
    check: Callable[[], Awaitable[T | None]],
    *,
    attempts: int,
    interval: float,
    description: str = "",
) -> T | TimeoutExhausted:
    """Await ``check`` until it returns something other than None.

    Sleeps ``interval`` between attempts (never after the last one), so the
    worst case returns after about ``(attempts - 1) * interval`` plus the time spent in ``check``.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        result = await check()
        if result is not None:
            if attempt > 1:
                logger.debug(f"{description or 'poll'} observed on attempt {attempt}/{attempts}")
            return result
        if attempt < attempts:
            await asyncio.sleep(interval)

    timeout = TimeoutExhausted(attempts=attempts, interval=interval, description=description)
    logger.debug(str(timeout))
    return timeout

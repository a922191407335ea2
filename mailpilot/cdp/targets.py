"""Target discovery over the DevTools HTTP endpoint.

The remote application exposes ``GET /json`` on its debugging port, listing
every debuggable page. An Electron mail client shows at least two: the
foreground renderer and a background page that owns sync and networking. Only
the foreground window is useful for driving the compose UI.
"""

import asyncio
import logging
from typing import Any, Sequence

import aiohttp
from pydantic import ValidationError

from mailpilot.cdp.views import Target, TargetMatchRule
from mailpilot.exceptions import DiscoveryError

logger = logging.getLogger(__name__)


async def list_targets(host_endpoint: str, timeout: float = 5.0) -> list[Target]:
    """Fetch and parse the target listing from ``{host_endpoint}/json``."""
    url = f"{host_endpoint.rstrip('/')}/json"
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as s:
            async with s.get(url) as resp:
                if resp.status != 200:
                    raise DiscoveryError(f"Target listing at {url} returned HTTP {resp.status}")
                raw = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise DiscoveryError(f"Could not reach DevTools endpoint {url}: {e}") from e
    except ValueError as e:
        raise DiscoveryError(f"Target listing at {url} is not JSON: {e}") from e

    return _parse_listing(raw, url)


def _parse_listing(raw: Any, url: str) -> list[Target]:
    if not isinstance(raw, list):
        raise DiscoveryError(f"Target listing at {url} is not a list")

    targets = []
    for descriptor in raw:
        if not isinstance(descriptor, dict) or "id" not in descriptor or "url" not in descriptor:
            raise DiscoveryError(f"Malformed target descriptor at {url}: {descriptor!r}")
        if not descriptor.get("webSocketDebuggerUrl"):
            # already attached to another debugger
            logger.debug(f"Skipping target {descriptor['id']} without a debugger socket")
            continue
        try:
            targets.append(Target.model_validate(descriptor))
        except ValidationError as e:
            raise DiscoveryError(f"Malformed target descriptor at {url}: {e}") from e

    logger.debug(f"Discovered {len(targets)} debuggable targets at {url}")
    return targets


def select_primary_target(targets: Sequence[Target], rule: TargetMatchRule) -> Target | None:
    """Return the first target matching ``rule``, or None when the app is not attached."""
    for target in targets:
        if rule.matches(target):
            return target
    return None


async def find_primary_target(host_endpoint: str, rule: TargetMatchRule) -> Target | None:
    return select_primary_target(await list_targets(host_endpoint), rule)

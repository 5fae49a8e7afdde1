"""Page wrapper exposing the browser actions used during asset discovery."""

from __future__ import annotations

import inspect
import logging
import re
from typing import Any, Callable, NamedTuple, Optional

from playwright.async_api import BrowserContext, Page

from snapshot_discovery.browser.network import Network
from snapshot_discovery.url_utils import normalize_resource_url

logger = logging.getLogger(__name__)

NAVIGATION_TIMEOUT = 30000  # ms

_FUNCTION_SOURCE = re.compile(r"^\s*(async\s+)?(function\b|\(|[\w$]+\s*=>)")


class PageSnapshot(NamedTuple):
    url: str
    dom: str


def _as_function(script: str) -> str:
    """Scripts are function bodies unless they are already a function expression."""
    if _FUNCTION_SOURCE.match(script):
        return script
    return f"async () => {{\n{script}\n}}"


class DiscoveryPage:
    """A Playwright page wired to a discovery run's network interception."""

    def __init__(
        self,
        page: Page,
        context: BrowserContext,
        network: Network,
        network_idle_timeout: int = 100,
        meta: Optional[dict] = None,
    ):
        self.page = page
        self.context = context
        self.network = network
        self.network_idle_timeout = network_idle_timeout
        self.meta = meta or {}

    async def resize(self, width: int, height: int) -> None:
        await self.page.set_viewport_size({"width": width, "height": height})

    async def goto(self, url: str) -> None:
        logger.debug("Navigate to: %s", url, extra={"meta": self.meta})
        await self.page.goto(url, wait_until="load", timeout=NAVIGATION_TIMEOUT)
        logger.debug("Page navigated", extra={"meta": self.meta})

    async def evaluate(self, script: Any) -> Any:
        """Run a hook: JS source, a callable taking the Playwright page, or a list of either."""
        if script is None:
            return None
        if isinstance(script, (list, tuple)):
            result = None
            for each in script:
                result = await self.evaluate(each)
            return result
        if callable(script):
            result = script(self.page)
            if inspect.isawaitable(result):
                result = await result
            return result
        return await self.page.evaluate(_as_function(script))

    async def network_idle(
        self, filter: Optional[Callable[[str], bool]] = None, timeout: Optional[int] = None
    ) -> None:
        await self.network.idle(filter, timeout or self.network_idle_timeout)

    async def snapshot(
        self,
        name: Optional[str] = None,
        wait_for_timeout: Optional[int] = None,
        wait_for_selector: Optional[str] = None,
        execute: Any = None,
    ) -> PageSnapshot:
        """Run before-snapshot hooks and waits, then serialize the page's DOM."""
        extra = {"meta": self.meta}
        logger.debug("Taking snapshot: %s", name or self.page.url, extra=extra)

        await self.evaluate(execute)
        if wait_for_timeout:
            logger.debug("Wait for %dms timeout", wait_for_timeout, extra=extra)
            await self.page.wait_for_timeout(wait_for_timeout)
        if wait_for_selector:
            logger.debug("Wait for selector: %s", wait_for_selector, extra=extra)
            await self.page.wait_for_selector(wait_for_selector)

        await self.network_idle()
        dom = await self.page.content()
        return PageSnapshot(url=normalize_resource_url(self.page.url), dom=dom)

    async def close(self) -> None:
        logger.debug("Page closing", extra={"meta": self.meta})
        await self.page.close()
        await self.context.close()

"""Chromium launcher for asset discovery pages."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

from playwright.async_api import Browser as PlaywrightBrowser
from playwright.async_api import Playwright, async_playwright

from snapshot_discovery.browser.network import Network
from snapshot_discovery.browser.page import DiscoveryPage

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

DEFAULT_VIEWPORT = {"width": 1280, "height": 1024}


class Browser:
    """Owns one Chromium instance for the lifetime of a discovery session."""

    def __init__(self, headless: bool = True, launch_options: Optional[dict[str, Any]] = None):
        self.headless = headless
        self.launch_options = dict(launch_options or {})
        self._playwright: Playwright | None = None
        self._browser: PlaywrightBrowser | None = None
        self._launch_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def launch(self) -> None:
        async with self._launch_lock:
            if self._browser is not None:
                return
            logger.debug("Launching Chromium (headless=%s)", self.headless)
            options = {k: v for k, v in self.launch_options.items() if k != "args"}
            args = ["--disable-blink-features=AutomationControlled"]
            args += self.launch_options.get("args", [])
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless, args=args, **options,
            )

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "Browser":
        await self.launch()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def page(
        self,
        enable_javascript: bool = True,
        network_idle_timeout: int = 100,
        request_headers: Optional[Mapping[str, str]] = None,
        authorization: Any = None,
        user_agent: Optional[str] = None,
        meta: Optional[dict] = None,
        intercept: Optional[Mapping[str, Any]] = None,
    ) -> DiscoveryPage:
        """Open an isolated context and page with request interception enabled."""
        await self.launch()

        context_kwargs: dict = {
            "viewport": DEFAULT_VIEWPORT,
            "java_script_enabled": enable_javascript,
            "user_agent": user_agent or DEFAULT_USER_AGENT,
        }
        if request_headers:
            context_kwargs["extra_http_headers"] = dict(request_headers)
        if authorization is not None:
            context_kwargs["http_credentials"] = {
                "username": authorization.username,
                "password": authorization.password or "",
            }

        context = await self._browser.new_context(**context_kwargs)
        page = await context.new_page()
        network = Network(page, intercept or {}, meta=meta)
        await network.watch()

        logger.debug("Page created", extra={"meta": meta or {}})
        return DiscoveryPage(page, context, network, network_idle_timeout, meta=meta)

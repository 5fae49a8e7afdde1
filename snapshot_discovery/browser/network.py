"""Request interception and network-idle tracking for discovery pages."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Mapping
from typing import Any, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Request, Route

from snapshot_discovery.errors import NetworkIdleTimeoutError
from snapshot_discovery.models.resource import create_resource
from snapshot_discovery.url_utils import hostname_matches, normalize_resource_url

logger = logging.getLogger(__name__)

# Give up waiting for the network to idle after this long
IDLE_WAIT_LIMIT = 30.0  # seconds
IDLE_POLL_INTERVAL = 0.01  # seconds
MAX_RESOURCE_SIZE = 25 * 1024 * 1024


class Network:
    """Intercepts a page's requests and tracks the ones still in flight.

    ``intercept`` carries the hostname allow/deny lists, the ``disable_cache``
    and ``enable_javascript`` flags, and the ``get_resource``/``save_resource``
    hooks of the discovery run.
    """

    def __init__(self, page: Page, intercept: Mapping[str, Any], meta: Optional[dict] = None):
        self.page = page
        self.intercept = intercept
        self.meta = meta or {}
        self._pending: dict[Request, str] = {}

    async def watch(self) -> None:
        """Attach request listeners and the interception route to the page."""
        self.page.on("request", self._on_request)
        self.page.on("requestfinished", self._on_request_done)
        self.page.on("requestfailed", self._on_request_done)
        await self.page.route("**/*", self._handle_route)

    def _on_request(self, request: Request) -> None:
        self._pending[request] = request.url

    def _on_request_done(self, request: Request) -> None:
        self._pending.pop(request, None)

    async def idle(self, filter: Optional[Callable[[str], bool]] = None, timeout: int = 100) -> None:
        """Wait until no matching request has been pending for ``timeout`` ms."""
        deadline = time.monotonic() + IDLE_WAIT_LIMIT
        idle_since: Optional[float] = None

        while True:
            active = [u for u in self._pending.values() if filter is None or filter(u)]
            now = time.monotonic()

            if active:
                idle_since = None
            elif idle_since is None:
                idle_since = now
            elif (now - idle_since) * 1000 >= timeout:
                return

            if now > deadline:
                logger.debug("Active requests: %s", ", ".join(active), extra={"meta": self.meta})
                raise NetworkIdleTimeoutError("Timed out waiting for network requests to idle.")

            await asyncio.sleep(IDLE_POLL_INTERVAL)

    # ------------------------------------------------------------------
    # Interception
    # ------------------------------------------------------------------

    async def _handle_route(self, route: Route) -> None:
        request = route.request
        url = normalize_resource_url(request.url)
        meta = {"meta": self.meta}

        try:
            if hostname_matches(self.intercept.get("disallowed_hostnames"), request.url):
                logger.debug("- Skipping disallowed hostname: %s", url, extra=meta)
                await route.abort("blockedbyclient")
                return

            get_resource = self.intercept.get("get_resource")
            resource = get_resource(url) if get_resource and request.method == "GET" else None
            cacheable = not self.intercept.get("disable_cache") and not request.is_navigation_request()
            if resource is not None and (resource.root or cacheable):
                logger.debug("- Serving resource from cache: %s", url, extra=meta)
                await route.fulfill(status=resource.status, headers=resource.headers, body=resource.content)
                # cached assets still belong to the snapshot being discovered
                save_resource = self.intercept.get("save_resource")
                if not resource.root and save_resource is not None:
                    save_resource(resource)
                return

            if request.method == "GET" and hostname_matches(self.intercept.get("allowed_hostnames"), request.url):
                await self._capture(route, url)
                return

            await route.continue_()
        except PlaywrightError as e:
            logger.debug("Encountered an error handling request: %s - %s", url, e, extra=meta)
            with contextlib.suppress(PlaywrightError):
                await route.abort()

    async def _capture(self, route: Route, url: str) -> None:
        """Fetch an allowed request, answer the page with it, and save it as a resource."""
        request = route.request
        meta = {"meta": self.meta}

        response = await route.fetch()
        body = await response.body()
        await route.fulfill(response=response, body=body)

        if request.is_navigation_request():
            return
        if not response.ok:
            logger.debug("- Skipping %d response: %s", response.status, url, extra=meta)
            return
        if len(body) > MAX_RESOURCE_SIZE:
            logger.debug("- Skipping resource larger than 25MB: %s", url, extra=meta)
            return
        if self.intercept.get("enable_javascript") is False and request.resource_type == "script":
            logger.debug("- Skipping script with JavaScript disabled: %s", url, extra=meta)
            return

        save_resource = self.intercept.get("save_resource")
        if save_resource is None:
            return
        mimetype = response.headers.get("content-type", "").split(";")[0].strip()
        logger.debug("- Capturing resource: %s", url, extra=meta)
        save_resource(create_resource(
            url, body, mimetype,
            status=response.status,
            headers=dict(response.headers),
        ))

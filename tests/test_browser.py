"""Tests for the Playwright browser, page, and network interception wrappers."""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from snapshot_discovery.browser.browser import DEFAULT_USER_AGENT, Browser
from snapshot_discovery.browser.network import Network
from snapshot_discovery.browser.page import DiscoveryPage, PageSnapshot
from snapshot_discovery.errors import NetworkIdleTimeoutError
from snapshot_discovery.models.resource import create_resource, make_root_resource
from snapshot_discovery.models.snapshot import BasicAuth


def _route(url: str, method: str = "GET", navigation: bool = False, resource_type: str = "stylesheet"):
    route = AsyncMock()
    route.request = Mock(url=url, method=method, resource_type=resource_type)
    route.request.is_navigation_request = Mock(return_value=navigation)
    return route


def _response(body: bytes, status: int = 200, content_type: str = "text/css"):
    response = Mock(ok=200 <= status < 300, status=status, headers={"content-type": content_type})
    response.body = AsyncMock(return_value=body)
    return response


class TestNetworkIdle:
    """Tests for Network.idle."""

    @pytest.mark.asyncio
    async def test_idle_when_nothing_pending(self):
        network = Network(Mock(), {})
        await asyncio.wait_for(network.idle(timeout=10), timeout=1)

    @pytest.mark.asyncio
    async def test_waits_for_pending_request(self):
        network = Network(Mock(), {})
        request = Mock(url="https://example.com/slow.js")
        network._on_request(request)
        asyncio.get_running_loop().call_later(0.05, network._on_request_done, request)

        loop = asyncio.get_running_loop()
        start = loop.time()
        await asyncio.wait_for(network.idle(timeout=10), timeout=2)
        assert loop.time() - start >= 0.05

    @pytest.mark.asyncio
    async def test_filter_ignores_unmatched_requests(self):
        network = Network(Mock(), {})
        network._on_request(Mock(url="https://tracker.test/pixel"))
        await asyncio.wait_for(
            network.idle(lambda url: "example.com" in url, timeout=10), timeout=1,
        )

    @pytest.mark.asyncio
    async def test_gives_up_after_limit(self):
        network = Network(Mock(), {})
        network._on_request(Mock(url="https://example.com/stream"))
        with patch("snapshot_discovery.browser.network.IDLE_WAIT_LIMIT", 0.05):
            with pytest.raises(NetworkIdleTimeoutError):
                await network.idle(timeout=10)

    @pytest.mark.asyncio
    async def test_watch_registers_listeners_and_route(self):
        page = Mock()
        page.route = AsyncMock()
        network = Network(page, {})
        await network.watch()
        events = [c.args[0] for c in page.on.call_args_list]
        assert events == ["request", "requestfinished", "requestfailed"]
        page.route.assert_awaited_once_with("**/*", network._handle_route)


class TestNetworkInterception:
    """Tests for request routing decisions."""

    @pytest.mark.asyncio
    async def test_disallowed_hostname_is_aborted(self):
        network = Network(Mock(), {"disallowed_hostnames": ["ads.test"]})
        route = _route("https://ads.test/banner.js")
        await network._handle_route(route)
        route.abort.assert_awaited_once_with("blockedbyclient")

    @pytest.mark.asyncio
    async def test_cached_resource_is_served(self):
        cached = create_resource("https://example.com/a.css", "cached", "text/css")
        saved = []
        network = Network(Mock(), {
            "get_resource": lambda url: cached if url == cached.url else None,
            "save_resource": saved.append,
        })
        route = _route("https://example.com/a.css#hash")
        await network._handle_route(route)
        route.fulfill.assert_awaited_once()
        assert route.fulfill.await_args.kwargs["body"] == b"cached"
        route.fetch.assert_not_awaited()
        assert saved == [cached]

    @pytest.mark.asyncio
    async def test_cache_disabled_skips_non_root(self):
        cached = create_resource("https://example.com/a.css", "cached", "text/css")
        network = Network(Mock(), {
            "disable_cache": True,
            "get_resource": lambda url: cached,
        })
        route = _route("https://example.com/a.css")
        await network._handle_route(route)
        route.continue_.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_root_resource_is_always_served(self):
        root = make_root_resource("https://example.com/", "<html></html>")
        network = Network(Mock(), {"disable_cache": True, "get_resource": lambda url: root})
        route = _route("https://example.com/", navigation=True, resource_type="document")
        await network._handle_route(route)
        assert route.fulfill.await_args.kwargs["body"] == b"<html></html>"

    @pytest.mark.asyncio
    async def test_allowed_resource_is_captured(self):
        saved = []
        network = Network(Mock(), {
            "allowed_hostnames": ["example.com"],
            "get_resource": lambda url: None,
            "save_resource": saved.append,
        })
        route = _route("https://example.com/app.css")
        route.fetch = AsyncMock(return_value=_response(b"body {}", content_type="text/css; charset=utf-8"))

        await network._handle_route(route)

        route.fulfill.assert_awaited_once()
        assert len(saved) == 1
        assert saved[0].url == "https://example.com/app.css"
        assert saved[0].mimetype == "text/css"
        assert saved[0].content == b"body {}"

    @pytest.mark.asyncio
    async def test_failed_responses_are_not_saved(self):
        saved = []
        network = Network(Mock(), {"allowed_hostnames": ["example.com"], "save_resource": saved.append})
        route = _route("https://example.com/missing.css")
        route.fetch = AsyncMock(return_value=_response(b"", status=404))
        await network._handle_route(route)
        assert saved == []

    @pytest.mark.asyncio
    async def test_navigation_documents_are_not_saved(self):
        saved = []
        network = Network(Mock(), {"allowed_hostnames": ["example.com"], "save_resource": saved.append})
        route = _route("https://example.com/", navigation=True, resource_type="document")
        route.fetch = AsyncMock(return_value=_response(b"<html></html>", content_type="text/html"))
        await network._handle_route(route)
        route.fulfill.assert_awaited_once()
        assert saved == []

    @pytest.mark.asyncio
    async def test_scripts_skipped_when_javascript_disabled(self):
        saved = []
        network = Network(Mock(), {
            "allowed_hostnames": ["example.com"],
            "enable_javascript": False,
            "save_resource": saved.append,
        })
        route = _route("https://example.com/app.js", resource_type="script")
        route.fetch = AsyncMock(return_value=_response(b"run()", content_type="text/javascript"))
        await network._handle_route(route)
        assert saved == []

    @pytest.mark.asyncio
    async def test_other_hosts_pass_through(self):
        network = Network(Mock(), {"allowed_hostnames": ["example.com"]})
        route = _route("https://fonts.test/font.woff2")
        await network._handle_route(route)
        route.continue_.assert_awaited_once()
        route.fetch.assert_not_awaited()


class TestDiscoveryPage:
    """Tests for DiscoveryPage actions."""

    def _page(self):
        page = AsyncMock()
        page.url = "https://example.com/#section"
        page.content = AsyncMock(return_value="<html></html>")
        context = AsyncMock()
        network = Mock()
        network.idle = AsyncMock()
        return DiscoveryPage(page, context, network, network_idle_timeout=150), page, context, network

    @pytest.mark.asyncio
    async def test_evaluate_wraps_function_bodies(self):
        discovery_page, page, _, _ = self._page()
        await discovery_page.evaluate("window.scrollTo(0, 100)")
        page.evaluate.assert_awaited_once_with("async () => {\nwindow.scrollTo(0, 100)\n}")

    @pytest.mark.asyncio
    async def test_evaluate_passes_function_expressions(self):
        discovery_page, page, _, _ = self._page()
        await discovery_page.evaluate("() => document.title")
        page.evaluate.assert_awaited_once_with("() => document.title")

    @pytest.mark.asyncio
    async def test_evaluate_callables_and_lists(self):
        discovery_page, page, _, _ = self._page()
        seen = []

        async def hook(p):
            seen.append(p)

        await discovery_page.evaluate([hook, lambda p: seen.append("sync"), None])
        assert seen == [page, "sync"]

    @pytest.mark.asyncio
    async def test_evaluate_none_is_noop(self):
        discovery_page, page, _, _ = self._page()
        assert await discovery_page.evaluate(None) is None
        page.evaluate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_snapshot_waits_and_serializes(self):
        discovery_page, page, _, network = self._page()

        result = await discovery_page.snapshot(
            name="Home", wait_for_timeout=250, wait_for_selector=".ready", execute="prepare()",
        )

        assert result == PageSnapshot(url="https://example.com/", dom="<html></html>")
        page.evaluate.assert_awaited_once_with("async () => {\nprepare()\n}")
        page.wait_for_timeout.assert_awaited_once_with(250)
        page.wait_for_selector.assert_awaited_once_with(".ready")
        network.idle.assert_awaited_once_with(None, 150)

    @pytest.mark.asyncio
    async def test_resize_and_close(self):
        discovery_page, page, context, _ = self._page()
        await discovery_page.resize(375, 1024)
        page.set_viewport_size.assert_awaited_once_with({"width": 375, "height": 1024})
        await discovery_page.close()
        page.close.assert_awaited_once()
        context.close.assert_awaited_once()


class TestBrowser:
    """Tests for Browser page creation."""

    @pytest.mark.asyncio
    async def test_page_context_options(self):
        browser = Browser()
        pw_page = Mock()
        pw_page.route = AsyncMock()
        context = AsyncMock()
        context.new_page = AsyncMock(return_value=pw_page)
        browser._browser = Mock()
        browser._browser.new_context = AsyncMock(return_value=context)

        page = await browser.page(
            enable_javascript=False,
            request_headers={"X-Test": "1"},
            authorization=BasicAuth(username="user", password="pass"),
            intercept={"allowed_hostnames": ["example.com"]},
        )

        kwargs = browser._browser.new_context.await_args.kwargs
        assert kwargs["java_script_enabled"] is False
        assert kwargs["user_agent"] == DEFAULT_USER_AGENT
        assert kwargs["extra_http_headers"] == {"X-Test": "1"}
        assert kwargs["http_credentials"] == {"username": "user", "password": "pass"}
        assert isinstance(page, DiscoveryPage)
        assert page.network.intercept == {"allowed_hostnames": ["example.com"]}
        pw_page.route.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_launch_uses_chromium(self):
        chromium_browser = Mock()
        playwright = Mock()
        playwright.chromium.launch = AsyncMock(return_value=chromium_browser)
        playwright.stop = AsyncMock()
        starter = Mock()
        starter.start = AsyncMock(return_value=playwright)

        with patch("snapshot_discovery.browser.browser.async_playwright", return_value=starter):
            browser = Browser(headless=False, launch_options={"args": ["--no-sandbox"], "slow_mo": 10})
            await browser.launch()

        kwargs = playwright.chromium.launch.await_args.kwargs
        assert kwargs["headless"] is False
        assert kwargs["args"] == ["--disable-blink-features=AutomationControlled", "--no-sandbox"]
        assert kwargs["slow_mo"] == 10

        chromium_browser.close = AsyncMock()
        await browser.close()
        chromium_browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_launches_start_one_browser(self):
        playwright = Mock()
        playwright.chromium.launch = AsyncMock(return_value=Mock())
        starter = Mock()

        async def start():
            await asyncio.sleep(0)
            return playwright

        starter.start = AsyncMock(side_effect=start)

        with patch("snapshot_discovery.browser.browser.async_playwright", return_value=starter):
            browser = Browser()
            await asyncio.gather(browser.launch(), browser.launch())

        starter.start.assert_awaited_once()
        playwright.chromium.launch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_relaunch_keeps_launch_args(self):
        playwright = Mock()
        playwright.chromium.launch = AsyncMock(return_value=Mock(close=AsyncMock()))
        playwright.stop = AsyncMock()
        starter = Mock()
        starter.start = AsyncMock(return_value=playwright)

        with patch("snapshot_discovery.browser.browser.async_playwright", return_value=starter):
            browser = Browser(launch_options={"args": ["--no-sandbox"]})
            await browser.launch()
            await browser.close()
            await browser.launch()

        first, second = playwright.chromium.launch.await_args_list
        assert first.kwargs["args"] == second.kwargs["args"]
        assert "--no-sandbox" in second.kwargs["args"]
        assert browser.launch_options == {"args": ["--no-sandbox"]}

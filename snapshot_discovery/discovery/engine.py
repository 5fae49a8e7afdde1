"""Asset discovery — drives a browser page to capture every resource a snapshot needs."""

from __future__ import annotations

import inspect
import json
import logging
import re
from typing import TYPE_CHECKING, Any, Callable

from snapshot_discovery.errors import DiscoveryError
from snapshot_discovery.logs import LogStore
from snapshot_discovery.models.resource import (
    Resource,
    make_log_resource,
    make_percy_css_resource,
    make_root_resource,
)
from snapshot_discovery.models.snapshot import SnapshotDiscovery, SnapshotSpec
from snapshot_discovery.url_utils import hostname_matches

if TYPE_CHECKING:
    from snapshot_discovery.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

ResourcesCallback = Callable[[SnapshotSpec, list[Resource]], Any]

_BODY_CLOSE = re.compile(r"</body>", re.IGNORECASE)


def debug_snapshot_config(snapshot: SnapshotSpec, show_info: bool = False) -> None:
    """Log the resolved options of a snapshot, one debug line per set property.

    With ``show_info`` the "snapshot found" lines are logged at info level.
    """
    extra = {"meta": snapshot.meta}
    logger.debug("---------", extra=extra)
    if show_info:
        logger.info("Snapshot found: %s", snapshot.name, extra=extra)
    else:
        logger.debug("Handling snapshot: %s", snapshot.name, extra=extra)

    def debug_prop(obj: Any, prop: str, fmt: Callable[[Any], str] = str) -> None:
        value = obj
        for key in prop.split("."):
            value = getattr(value, key, None)
        if value is None:
            return
        values = value if isinstance(value, list) else [value]
        logger.debug("- %s: %s", prop, ", ".join(fmt(v) for v in values), extra=extra)

    debug_prop(snapshot, "url")
    debug_prop(snapshot, "widths", lambda v: f"{v}px")
    debug_prop(snapshot, "min_height", lambda v: f"{v}px")
    debug_prop(snapshot, "enable_javascript")
    debug_prop(snapshot, "wait_for_timeout")
    debug_prop(snapshot, "wait_for_selector")
    debug_prop(snapshot, "execute.after_navigation")
    debug_prop(snapshot, "execute.before_resize")
    debug_prop(snapshot, "execute.after_resize")
    debug_prop(snapshot, "execute.before_snapshot")
    debug_prop(snapshot, "discovery.allowed_hostnames")
    debug_prop(snapshot, "discovery.disallowed_hostnames")
    debug_prop(snapshot, "discovery.request_headers", json.dumps)
    debug_prop(snapshot, "discovery.authorization", lambda v: json.dumps(v.model_dump()))
    debug_prop(snapshot, "discovery.disable_cache")
    debug_prop(snapshot, "discovery.user_agent")
    debug_prop(snapshot, "client_info")
    debug_prop(snapshot, "environment_info")
    debug_prop(snapshot, "dom_snapshot", lambda v: str(bool(v)))

    for added in snapshot.additional_snapshots:
        if show_info:
            logger.info("Snapshot found: %s", added.name, extra=extra)
        else:
            logger.debug("Additional snapshot: %s", added.name, extra=extra)
        debug_prop(added, "wait_for_timeout")
        debug_prop(added, "wait_for_selector")
        debug_prop(added, "execute")


async def _invoke(callback: ResourcesCallback, snapshot: SnapshotSpec, resources: list[Resource]) -> None:
    result = callback(snapshot, resources)
    if inspect.isawaitable(result):
        await result


def _inject_css_link(html: str, href: str) -> str:
    """Insert a stylesheet link before the last closing body tag, if any."""
    matches = list(_BODY_CLOSE.finditer(html))
    if not matches:
        return html
    at = matches[-1].start()
    link = f'<link data-percy-specific-css rel="stylesheet" href="{href}"/>'
    return html[:at] + link + html[at:]


async def handle_snapshot_resources(
    snapshot: SnapshotSpec,
    resources: dict[str, Resource],
    callback: ResourcesCallback,
    log_store: LogStore | None = None,
) -> None:
    """Order a snapshot's resources, add synthesized ones, and hand them to the callback."""
    ordered = list(resources.values())

    # sort the root resource first
    root_index = next(i for i, r in enumerate(ordered) if r.root)
    root = ordered.pop(root_index)

    if snapshot.percy_css:
        css = make_percy_css_resource(root.url, snapshot.percy_css)
        ordered.append(css)
        root = make_root_resource(root.url, _inject_css_link(root.text, css.pathname))

    ordered.insert(0, root)

    # include associated snapshot logs matched by meta information
    name = (snapshot.meta.get("snapshot") or {}).get("name")
    logs = []
    if log_store is not None:
        logs = log_store.query(lambda entry: (entry["meta"].get("snapshot") or {}).get("name") == name)
    ordered.append(make_log_resource(logs))

    await _invoke(callback, snapshot, ordered)


async def wait_for_discovery_network_idle(page, discovery: SnapshotDiscovery) -> None:
    """Wait until no request to an allowed hostname is pending."""
    allowed = discovery.allowed_hostnames
    await page.network_idle(lambda url: hostname_matches(allowed, url), discovery.network_idle_timeout)


async def discover_snapshot_resources(
    context: "Orchestrator", snapshot: SnapshotSpec, callback: ResourcesCallback
) -> None:
    """Discover resources for a snapshot using a browser page to intercept requests.

    The callback is called once for the snapshot and once for each of its
    additional snapshots, with the snapshot and its list of resources. Every
    ``await`` below is one browser action; the page is always closed before
    an error propagates.
    """
    debug_snapshot_config(snapshot, context.dry_run)

    # when dry-running, invoke the callback for each snapshot and return
    if context.dry_run:
        for snap in snapshot.all_snapshots:
            await _invoke(callback, snap, [])
        return

    cache = context.resource_cache
    meta = {"meta": snapshot.meta}
    # copy widths to prevent mutation later
    widths = list(snapshot.widths)

    # preload the root resource for existing dom snapshots
    resources: dict[str, Resource] = {}
    if snapshot.dom_snapshot:
        root = make_root_resource(snapshot.url, snapshot.dom_snapshot)
        resources[root.url] = root

    def get_resource(url: str) -> Resource | None:
        return resources.get(url) or cache.get(url)

    def save_resource(resource: Resource) -> None:
        resources[resource.url] = resource
        cache.set(resource)

    enable_javascript = snapshot.enable_javascript
    if enable_javascript is None:
        enable_javascript = not snapshot.dom_snapshot

    discovery = snapshot.discovery
    page = None
    try:
        page = await context.browser.page(
            enable_javascript=enable_javascript,
            network_idle_timeout=discovery.network_idle_timeout,
            request_headers=discovery.request_headers,
            authorization=discovery.authorization,
            user_agent=discovery.user_agent,
            meta=snapshot.meta,
            intercept={
                "enable_javascript": snapshot.enable_javascript,
                "disable_cache": discovery.disable_cache,
                "allowed_hostnames": discovery.allowed_hostnames,
                "disallowed_hostnames": discovery.disallowed_hostnames,
                "get_resource": get_resource,
                "save_resource": save_resource,
            },
        )

        # set the initial page size
        first = widths.pop(0)
        logger.debug("Discovering resources @%dpx for %s", first, snapshot.url, extra=meta)
        await page.resize(width=first, height=snapshot.min_height)

        await page.goto(snapshot.url)
        await page.evaluate(snapshot.execute.after_navigation)

        # trigger resize events for other widths
        for width in widths:
            await page.evaluate(snapshot.execute.before_resize)
            await wait_for_discovery_network_idle(page, discovery)
            logger.debug("Discovering resources @%dpx for %s", width, snapshot.url, extra=meta)
            await page.resize(width=width, height=snapshot.min_height)
            await page.evaluate(snapshot.execute.after_resize)

        if snapshot.dom_snapshot:
            # ensure discovery has finished and handle resources
            await wait_for_discovery_network_idle(page, discovery)
            await handle_snapshot_resources(snapshot, resources, callback, context.log_store)
        else:
            # capture snapshots sequentially, they share one page
            for snap, capture in snapshot.captures:
                captured = await page.snapshot(**capture)
                # use the normalized root url to prevent duplicates
                root = make_root_resource(captured.url, captured.dom)
                resources[root.url] = root
                await handle_snapshot_resources(snap, resources, callback, context.log_store)
                # remove the previously captured dom snapshot
                resources.pop(root.url, None)
    except DiscoveryError:
        raise
    except Exception as e:
        logger.error("Encountered an error taking snapshot: %s", snapshot.name, extra=meta)
        raise DiscoveryError(f"Failed to discover resources for {snapshot.name}: {e}") from e
    finally:
        if page is not None:
            await page.close()

"""Gather the snapshots described by a set of raw options."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from snapshot_discovery.crawler.sitemap import gather_sitemap_urls
from snapshot_discovery.errors import NoSnapshotsError
from snapshot_discovery.models.snapshot import SnapshotSpec
from snapshot_discovery.options.resolver import (
    SERVER_BASE_URL,
    map_snapshot_options,
    validate_snapshot_options,
)

if TYPE_CHECKING:
    from snapshot_discovery.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

DEFAULT_SERVER_PORT = 5338


def server_address(options: Mapping[str, Any]) -> str:
    """Address snapshots of a locally served directory are resolved against."""
    port = options.get("port") or DEFAULT_SERVER_PORT
    return f"{SERVER_BASE_URL}:{port}{options.get('base_url') or '/'}"


async def gather_snapshots(context: "Orchestrator", options: Mapping[str, Any]) -> list[SnapshotSpec]:
    """Validate raw options and return the snapshot specs they describe.

    Raises NoSnapshotsError when nothing is left after filtering.
    """
    options = validate_snapshot_options(options)
    base_url = options.get("base_url")
    snapshots = options.get("snapshots")

    if "url" in options:
        snapshots = [options]
    if "sitemap" in options:
        snapshots = await gather_sitemap_urls(options["sitemap"])
    if "serve" in options:
        base_url = server_address(options)
        options = {**options, "base_url": base_url}

    # validate lazily evaluated snapshots
    if callable(snapshots):
        evaluated = snapshots(base_url)
        if inspect.isawaitable(evaluated):
            evaluated = await evaluated
        listed: dict[str, Any] = {"snapshots": evaluated}
        if base_url:
            listed["base_url"] = base_url
        snapshots = validate_snapshot_options(listed).get("snapshots")

    specs = map_snapshot_options(context, snapshots, options)
    if not specs:
        raise NoSnapshotsError()

    logger.debug("Gathered %d snapshots", len(specs))
    return specs

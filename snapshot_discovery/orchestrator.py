"""Discovery orchestrator — gathers snapshots and discovers their resources."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Mapping, Optional

from snapshot_discovery.browser.browser import Browser
from snapshot_discovery.discovery.cache import ResourceCache
from snapshot_discovery.discovery.engine import ResourcesCallback, discover_snapshot_resources
from snapshot_discovery.logs import LogStore, install_log_store, uninstall_log_store
from snapshot_discovery.models.config import CaptureConfig
from snapshot_discovery.models.resource import Resource
from snapshot_discovery.models.snapshot import SnapshotSpec
from snapshot_discovery.options.gatherer import gather_snapshots
from snapshot_discovery.url_utils import snapshot_slug

logger = logging.getLogger(__name__)


class Orchestrator:
    """Owns the shared state of one capture session.

    Discovery functions receive the orchestrator as their context and read
    ``config``, ``build``, ``dry_run``, ``resource_cache``, ``log_store`` and
    ``browser`` from it.
    """

    def __init__(
        self,
        config: CaptureConfig,
        dry_run: bool = False,
        output_dir: str | Path | None = None,
    ):
        self.config = config
        self.dry_run = dry_run
        self.output_dir = Path(output_dir or config.output_dir)
        self.build = {"id": f"build_{uuid.uuid4().hex[:8]}"}
        self.resource_cache = ResourceCache()
        self.log_store = LogStore()
        self.browser = Browser(
            headless=config.discovery.headless,
            launch_options=config.discovery.launch_options,
        )
        self.captured: list[dict[str, Any]] = []

    @property
    def build_dir(self) -> Path:
        return self.output_dir / self.build["id"]

    async def snapshot(
        self,
        options: Mapping[str, Any],
        callback: Optional[ResourcesCallback] = None,
    ) -> list[SnapshotSpec]:
        """Gather snapshots from raw options and discover each one in turn."""
        callback = callback or self.save_snapshot
        install_log_store(self.log_store)
        try:
            snapshots = await gather_snapshots(self, options)
            logger.info("Found %d snapshot(s)", len(snapshots))
            for snapshot in snapshots:
                await discover_snapshot_resources(self, snapshot, callback)
        finally:
            if not self.dry_run:
                await self.browser.close()
            uninstall_log_store(self.log_store)

        return snapshots

    def save_snapshot(self, snapshot: SnapshotSpec, resources: list[Resource]) -> None:
        """Default resources callback: write a manifest and resource bodies to disk."""
        entry = {
            "name": snapshot.name,
            "url": snapshot.url,
            "widths": snapshot.widths,
            "resources": [
                {"url": r.url, "mimetype": r.mimetype, "sha": r.sha, "root": r.root}
                for r in resources
            ],
        }
        self.captured.append(entry)

        if self.dry_run:
            return

        snapshot_dir = self.build_dir / snapshot_slug(snapshot.name)
        snapshot_dir.mkdir(parents=True, exist_ok=True)
        for resource in resources:
            (snapshot_dir / resource.sha).write_bytes(resource.content)

        path = snapshot_dir / "manifest.json"
        logger.debug("Saving snapshot manifest to %s", path)
        with open(path, "w") as f:
            json.dump(entry, f, indent=2)

    async def _run(self, options: Mapping[str, Any]) -> dict:
        start = time.time()
        snapshots = await self.snapshot(options)
        duration = time.time() - start

        logger.info("Discovery complete in %.1fs", duration)
        return {
            "build_id": self.build["id"],
            "duration": round(duration, 2),
            "dry_run": self.dry_run,
            "snapshots": len(snapshots),
            "captured": self.captured,
            "output_dir": None if self.dry_run else str(self.build_dir),
        }

    def run(self, options: Mapping[str, Any]) -> dict:
        """Run gathering and discovery to completion and return a summary."""
        return asyncio.run(self._run(options))

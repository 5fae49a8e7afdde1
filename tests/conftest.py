"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from snapshot_discovery.browser.page import PageSnapshot
from snapshot_discovery.discovery.cache import ResourceCache
from snapshot_discovery.logs import LogStore
from snapshot_discovery.models.config import CaptureConfig, DiscoveryConfig, SnapshotConfig
from snapshot_discovery.models.snapshot import SnapshotSpec


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def capture_config() -> CaptureConfig:
    """Create a test capture configuration."""
    return CaptureConfig(
        snapshot=SnapshotConfig(widths=[375, 1280], min_height=1024),
        discovery=DiscoveryConfig(network_idle_timeout=100),
    )


@pytest.fixture
def temp_config_file(capture_config: CaptureConfig, tmp_path: Path) -> Path:
    """Create a temporary config file."""
    config_file = tmp_path / "capture-config.json"
    capture_config.save(config_file)
    return config_file


# ============================================================================
# Discovery Context Fixtures
# ============================================================================


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock discovery page that captures a minimal document."""
    page = AsyncMock()
    page.snapshot = AsyncMock(return_value=PageSnapshot(
        url="https://example.com/",
        dom="<html><head></head><body><p>Hello</p></body></html>",
    ))
    return page


@pytest.fixture
def discovery_context(capture_config: CaptureConfig, mock_page: AsyncMock) -> Mock:
    """Create a mock orchestrator carrying the state discovery reads."""
    context = Mock()
    context.config = capture_config
    context.build = {"id": "build_test"}
    context.dry_run = False
    context.resource_cache = ResourceCache()
    context.log_store = LogStore()
    context.browser = Mock()
    context.browser.page = AsyncMock(return_value=mock_page)
    return context


# ============================================================================
# Snapshot Fixtures
# ============================================================================


@pytest.fixture
def snapshot_spec() -> SnapshotSpec:
    """Create a resolved snapshot for https://example.com/."""
    return SnapshotSpec(
        name="/",
        url="https://example.com/",
        widths=[375, 1280],
        discovery={"allowed_hostnames": ["example.com"]},
        meta={"snapshot": {"name": "/"}, "build": {"id": "build_test"}},
    )

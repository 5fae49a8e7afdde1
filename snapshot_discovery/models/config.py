"""Global configuration models for snapshot discovery."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, PositiveInt, field_validator

DEFAULT_WIDTHS = [375, 1280]
DEFAULT_MIN_HEIGHT = 1024
DEFAULT_NETWORK_IDLE_TIMEOUT = 100  # ms

# Discovery options that are inherited by each snapshot
SNAPSHOT_DISCOVERY_OPTIONS = (
    "allowed_hostnames",
    "disallowed_hostnames",
    "network_idle_timeout",
    "request_headers",
    "authorization",
    "disable_cache",
    "user_agent",
)


class AuthorizationConfig(BaseModel):
    username: str
    password: str = ""

    @field_validator("password", mode="before")
    @classmethod
    def resolve_env_password(cls, v: str) -> str:
        if isinstance(v, str) and v.startswith("env:"):
            env_var = v[4:]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            return resolved
        return v


class SnapshotConfig(BaseModel):
    widths: list[PositiveInt] = Field(default_factory=lambda: list(DEFAULT_WIDTHS))
    min_height: PositiveInt = DEFAULT_MIN_HEIGHT
    percy_css: str = ""
    enable_javascript: Optional[bool] = None


class DiscoveryConfig(BaseModel):
    allowed_hostnames: list[str] = Field(default_factory=list)
    disallowed_hostnames: list[str] = Field(default_factory=list)
    network_idle_timeout: PositiveInt = DEFAULT_NETWORK_IDLE_TIMEOUT
    request_headers: dict[str, str] = Field(default_factory=dict)
    authorization: Optional[AuthorizationConfig] = None
    disable_cache: bool = False
    user_agent: Optional[str] = None

    # Browser-level settings, never inherited by snapshots
    headless: bool = True
    launch_options: dict[str, Any] = Field(default_factory=dict)


class CaptureConfig(BaseModel):
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)

    # Where manifests and resource bodies are written
    output_dir: str = "./.snapshot-discovery"

    def snapshot_defaults(self) -> dict[str, Any]:
        """Global snapshot options as a merge source (unset values omitted)."""
        return self.snapshot.model_dump(exclude_none=True)

    def snapshot_discovery(self) -> dict[str, Any]:
        """The whitelisted discovery options every snapshot inherits."""
        return self.discovery.model_dump(include=set(SNAPSHOT_DISCOVERY_OPTIONS))

    @classmethod
    def load(cls, path: str | Path) -> "CaptureConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)

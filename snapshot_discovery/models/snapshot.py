"""Resolved snapshot specifications handed to asset discovery."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, PositiveInt, field_validator, model_validator

from snapshot_discovery.models.config import DEFAULT_MIN_HEIGHT, DEFAULT_NETWORK_IDLE_TIMEOUT
from snapshot_discovery.url_utils import hostname_matches, validate_url

# A hook is a JS source string, a Python callable taking the page, or a list of either
Hook = Any


class BasicAuth(BaseModel):
    username: str
    password: str = ""


class ExecuteHooks(BaseModel):
    after_navigation: Hook = None
    before_resize: Hook = None
    after_resize: Hook = None
    before_snapshot: Hook = None


class SnapshotDiscovery(BaseModel):
    allowed_hostnames: list[str] = Field(default_factory=list)
    disallowed_hostnames: list[str] = Field(default_factory=list)
    network_idle_timeout: PositiveInt = DEFAULT_NETWORK_IDLE_TIMEOUT
    request_headers: dict[str, str] = Field(default_factory=dict)
    authorization: Optional[BasicAuth] = None
    disable_cache: bool = False
    user_agent: Optional[str] = None


class AdditionalSnapshot(BaseModel):
    """A sibling capture sharing the primary snapshot's page."""

    name: str
    wait_for_timeout: Optional[int] = None
    wait_for_selector: Optional[str] = None
    execute: Hook = None


class SnapshotSpec(BaseModel):
    name: str
    url: str
    widths: list[PositiveInt]
    min_height: PositiveInt = DEFAULT_MIN_HEIGHT
    enable_javascript: Optional[bool] = None
    dom_snapshot: Optional[str] = None
    percy_css: str = ""
    wait_for_timeout: Optional[int] = None
    wait_for_selector: Optional[str] = None
    discovery: SnapshotDiscovery = Field(default_factory=SnapshotDiscovery)
    execute: ExecuteHooks = Field(default_factory=ExecuteHooks)
    additional_snapshots: list[AdditionalSnapshot] = Field(default_factory=list)
    client_info: Optional[str] = None
    environment_info: Optional[str] = None
    meta: dict[str, Any] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, v: str) -> str:
        return validate_url(v)

    @field_validator("widths")
    @classmethod
    def _dedupe_widths(cls, v: list[int]) -> list[int]:
        if not v:
            raise ValueError("widths must not be empty")
        return sorted(set(v))

    @model_validator(mode="after")
    def _never_disallow_root(self) -> "SnapshotSpec":
        self.discovery.disallowed_hostnames = [
            h for h in self.discovery.disallowed_hostnames
            if not hostname_matches(h, self.url)
        ]
        return self

    @property
    def all_snapshots(self) -> list["SnapshotSpec"]:
        """The primary snapshot followed by each additional snapshot merged over it."""
        return [self] + [self.with_overlay(added) for added in self.additional_snapshots]

    @property
    def captures(self) -> list[tuple["SnapshotSpec", dict[str, Any]]]:
        """Each snapshot paired with the options of its own page capture.

        Additional snapshots capture with only their own waits and hook.
        """
        captures = [(self, {
            "name": self.name,
            "wait_for_timeout": self.wait_for_timeout,
            "wait_for_selector": self.wait_for_selector,
            "execute": self.execute.before_snapshot,
        })]
        for added in self.additional_snapshots:
            hook = added.execute
            if isinstance(hook, dict):
                hook = hook.get("before_snapshot")
            captures.append((self.with_overlay(added), {
                "name": added.name,
                "wait_for_timeout": added.wait_for_timeout,
                "wait_for_selector": added.wait_for_selector,
                "execute": hook,
            }))
        return captures

    def with_overlay(self, added: AdditionalSnapshot) -> "SnapshotSpec":
        """Shallow merge of an additional snapshot over this one."""
        overlay = added.model_dump(exclude_none=True, exclude={"execute"})
        if added.execute is not None:
            hook = added.execute
            if isinstance(hook, dict):
                hook = hook.get("before_snapshot")
            overlay["execute"] = self.execute.model_copy(update={"before_snapshot": hook})
        return self.model_copy(update=overlay)

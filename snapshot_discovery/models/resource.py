"""Discovered resource model and constructors for synthesized resources."""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any
from urllib.parse import urljoin, urlparse

from pydantic import BaseModel, Field, model_validator

from snapshot_discovery.url_utils import normalize_resource_url


class Resource(BaseModel):
    url: str
    content: bytes = b""
    mimetype: str = ""
    root: bool = False
    sha: str = ""
    status: int = 200
    headers: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _compute_sha(self) -> "Resource":
        if not self.sha:
            self.sha = hashlib.sha256(self.content).hexdigest()
        return self

    @property
    def pathname(self) -> str:
        return urlparse(self.url).path or "/"

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


def create_resource(url: str, content: str | bytes, mimetype: str = "", **attrs: Any) -> Resource:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return Resource(url=url, content=content, mimetype=mimetype, **attrs)


def make_root_resource(url: str, content: str | bytes) -> Resource:
    """Root document resource for a snapshot, keyed by its normalized URL."""
    return create_resource(normalize_resource_url(url), content, "text/html", root=True)


def make_percy_css_resource(root_url: str, css: str) -> Resource:
    """Stylesheet holding the snapshot's injected CSS, served from the root host."""
    url = urljoin(root_url, f"/percy-specific.{int(time.time() * 1000)}.css")
    return create_resource(url, css, "text/css")


def make_log_resource(logs: list[dict[str, Any]]) -> Resource:
    """Bundle of the log lines associated with a snapshot."""
    url = f"/percy.{int(time.time() * 1000)}.log"
    return create_resource(url, json.dumps(logs, default=str), "text/plain")

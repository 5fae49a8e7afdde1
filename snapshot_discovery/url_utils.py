"""Shared URL utilities — validate snapshot URLs, normalize resource URLs, match hostnames."""

from __future__ import annotations

import hashlib
import re
from urllib.parse import urljoin, urlparse

from snapshot_discovery.errors import InvalidURLError, MissingURLError

_HOST_RULE = re.compile(r"^(?P<hostname>.+?)(?::(?P<port>\d+))?$")


def validate_url(url: str | None, base: str | None = None) -> str:
    """Resolve a snapshot URL against an optional base and return its absolute form."""
    if not url:
        raise MissingURLError()
    if not isinstance(url, str):
        raise InvalidURLError(repr(url))

    full = urljoin(base, url) if base else url
    try:
        parsed = urlparse(full)
        port = parsed.port
    except ValueError:
        raise InvalidURLError(url) from None
    if not parsed.scheme or not parsed.hostname:
        raise InvalidURLError(url)

    netloc = parsed.hostname
    if port is not None:
        netloc = f"{netloc}:{port}"
    if "@" in parsed.netloc:
        netloc = f"{parsed.netloc.rsplit('@', 1)[0]}@{netloc}"

    href = f"{parsed.scheme.lower()}://{netloc}{parsed.path or '/'}"
    if parsed.query:
        href += f"?{parsed.query}"
    if parsed.fragment:
        href += f"#{parsed.fragment}"
    return href


def snapshot_name_from_url(url: str) -> str:
    """Default snapshot name: path, search and fragment of the URL."""
    parsed = urlparse(url)
    name = parsed.path or "/"
    if parsed.query:
        name += f"?{parsed.query}"
    if parsed.fragment:
        name += f"#{parsed.fragment}"
    return name


def hostname_of(url: str) -> str:
    return urlparse(url).hostname or ""


def normalize_resource_url(url: str) -> str:
    """Normalize a resource URL for cache keys (drops the fragment)."""
    parsed = urlparse(url)
    href = f"{parsed.scheme}://{parsed.netloc}{parsed.path or '/'}"
    if parsed.query:
        href += f"?{parsed.query}"
    return href


def hostname_matches(patterns, url: str) -> bool:
    """Return True if the hostname of ``url`` matches any hostname pattern.

    Patterns may be a single string (split on whitespace and commas) or a list.
    ``*.example.com`` also matches subdomains, ``*`` matches everything and a
    ``host:port`` pattern only matches that port. ``url`` may be a bare hostname.
    """
    subject = urlparse(url if "://" in url else f"http://{url}")
    try:
        subject_port = subject.port
    except ValueError:
        subject_port = None
    subject_host = subject.hostname or ""

    if isinstance(patterns, str):
        patterns = re.split(r"[\s,]+", patterns)
    elif patterns is None:
        patterns = []

    for pattern in patterns:
        if pattern == "*":
            return True
        if not pattern:
            continue

        rule = _HOST_RULE.match(pattern)
        if not rule:
            continue
        port = rule.group("port")
        if port and (subject_port is None or int(port) != subject_port):
            continue

        wildcard = rule.group("hostname").startswith("*.")
        hostname = rule.group("hostname").lower()
        if wildcard:
            hostname = hostname[2:]

        if subject_host == hostname or (wildcard and subject_host.endswith(f".{hostname}")):
            return True

    return False


def snapshot_slug(name: str) -> str:
    """Generate a stable directory-safe id from a snapshot name."""
    return hashlib.md5(name.encode()).hexdigest()[:12]

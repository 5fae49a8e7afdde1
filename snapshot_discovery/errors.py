"""Error types raised while resolving snapshots and discovering their assets."""

from __future__ import annotations

from dataclasses import dataclass


class SnapshotError(Exception):
    """Base class for fatal snapshot resolution and discovery errors."""


class MissingURLError(SnapshotError, ValueError):
    def __init__(self, message: str = "Missing required URL for snapshot"):
        super().__init__(message)


class InvalidURLError(SnapshotError, ValueError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid snapshot URL: {url}")


class NoSnapshotsError(SnapshotError):
    def __init__(self, message: str = "No snapshots found"):
        super().__init__(message)


class SitemapFetchError(SnapshotError):
    """The sitemap could not be fetched (transport failure or error status)."""


class SitemapFormatError(SnapshotError):
    """The sitemap response was not an XML document."""


class DiscoveryError(SnapshotError):
    """Any failure while a discovery page was open."""


class NetworkIdleTimeoutError(DiscoveryError):
    """Requests were still pending when the idle wait gave up."""


@dataclass
class SchemaViolation:
    """A non-fatal validation problem; the offending option is scrubbed."""

    path: str
    message: str

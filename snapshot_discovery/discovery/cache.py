"""Resource cache shared by every discovery run of one orchestrator."""

from __future__ import annotations

from typing import Iterator, Optional

from snapshot_discovery.models.resource import Resource


class ResourceCache:
    """Additive URL → Resource mapping; entries live as long as the cache.

    Stale entries are the caller's concern (``discovery.disable_cache``).
    """

    def __init__(self) -> None:
        self._resources: dict[str, Resource] = {}

    def get(self, url: str) -> Optional[Resource]:
        return self._resources.get(url)

    def set(self, resource: Resource) -> Resource:
        self._resources[resource.url] = resource
        return resource

    def __contains__(self, url: object) -> bool:
        return url in self._resources

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> Iterator[str]:
        return iter(self._resources)

    def clear(self) -> None:
        self._resources.clear()

"""In-memory log store used to correlate log lines with snapshots."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

LOGGER_NAMESPACE = "snapshot_discovery"

# logger levels in effect before the first store was attached
_saved_levels: dict[str, int] = {}


class LogStore(logging.Handler):
    """Logging handler that keeps every record it sees for later querying.

    Log calls tag records with ``extra={"meta": snapshot.meta}``; the discovery
    engine queries the store for the lines belonging to a snapshot and ships
    them as a log resource next to the snapshot's assets.
    """

    def __init__(self, level: int = logging.DEBUG):
        super().__init__(level)
        self._entries: list[dict[str, Any]] = []
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "debug": record.name,
                "level": record.levelname.lower(),
                "message": record.getMessage(),
                "meta": dict(getattr(record, "meta", None) or {}),
                "timestamp": int(record.created * 1000),
            }
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(entry)

    def query(self, predicate: Callable[[dict[str, Any]], bool]) -> list[dict[str, Any]]:
        with self._entries_lock:
            return [e for e in self._entries if predicate(e)]

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def install_log_store(store: LogStore | None = None) -> LogStore:
    """Attach a log store to the package logger (idempotent per store).

    The package logger is lowered to DEBUG while any store is attached so
    every line can be shipped with its snapshot.
    """
    store = store or LogStore()
    package_logger = logging.getLogger(LOGGER_NAMESPACE)
    if store in package_logger.handlers:
        return store
    if not _attached_stores(package_logger):
        _saved_levels[LOGGER_NAMESPACE] = package_logger.level
    package_logger.addHandler(store)
    if package_logger.level == logging.NOTSET or package_logger.level > logging.DEBUG:
        package_logger.setLevel(logging.DEBUG)
    return store


def uninstall_log_store(store: LogStore) -> None:
    package_logger = logging.getLogger(LOGGER_NAMESPACE)
    package_logger.removeHandler(store)
    # restore the level once the last store is gone
    if not _attached_stores(package_logger) and LOGGER_NAMESPACE in _saved_levels:
        package_logger.setLevel(_saved_levels.pop(LOGGER_NAMESPACE))


def _attached_stores(package_logger: logging.Logger) -> list[LogStore]:
    return [h for h in package_logger.handlers if isinstance(h, LogStore)]

"""Resolve snapshot options into per-snapshot config."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional

from pydantic.alias_generators import to_camel

from snapshot_discovery.models.snapshot import SnapshotSpec
from snapshot_discovery.options import schema
from snapshot_discovery.options.merge import merge
from snapshot_discovery.options.predicates import snapshot_matches
from snapshot_discovery.url_utils import (
    hostname_matches,
    hostname_of,
    snapshot_name_from_url,
    validate_url,
)

if TYPE_CHECKING:
    from snapshot_discovery.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

SERVER_BASE_URL = "http://localhost"


def _has(options: Mapping[str, Any], key: str) -> bool:
    """Check an option marker under its field name or its camelCase spelling."""
    return key in options or to_camel(key) in options


def _pop(options: dict, key: str) -> Any:
    value = options.pop(key, None)
    camel = options.pop(to_camel(key), None)
    return value if value is not None else camel


def select_schema(options: Mapping[str, Any]) -> str:
    """Decide which schema the raw options are validated against."""
    if _has(options, "dom_snapshot"):
        return "/snapshot/dom"
    if "url" in options:
        return "/snapshot"
    if "sitemap" in options:
        return "/snapshot/sitemap"
    if "serve" in options:
        return "/snapshot/server"
    if "snapshots" in options:
        return "/snapshot/list"
    return "/snapshot"


def validate_snapshot_options(options: Mapping[str, Any]) -> dict[str, Any]:
    """Validate and migrate snapshot options against the schema their keys imply.

    Eagerly raises MissingURLError/InvalidURLError when any snapshot lacks a
    usable URL. Every other problem is logged as a warning and the offending
    option is scrubbed from the returned options.
    """
    schema_id = select_schema(options)

    migrated = schema.migrate(options, schema_id)
    client_info = _pop(migrated, "client_info")
    environment_info = _pop(migrated, "environment_info")
    snapshots = migrated.pop("snapshots", None)

    # gather info for validating individual snapshot URLs
    is_snapshot = schema_id in ("/snapshot/dom", "/snapshot")
    base_url = SERVER_BASE_URL if schema_id == "/snapshot/server" else migrated.get("base_url")
    if is_snapshot:
        snaps = [migrated]
    else:
        snaps = snapshots if isinstance(snapshots, list) else []
    for snap in snaps:
        validate_url(_snapshot_url(snap), base_url)

    # callable snapshots are validated once they are evaluated
    if snapshots is not None:
        migrated["snapshots"] = [] if callable(snapshots) else snapshots
    elif not is_snapshot and "snapshots" in options:
        migrated["snapshots"] = []

    errors = schema.validate(migrated, schema_id)
    if errors:
        logger.warning("Invalid snapshot options:")
        for error in errors:
            logger.warning("- %s: %s", error.path, error.message)

    if callable(snapshots):
        migrated["snapshots"] = snapshots
    if "serve" in options and "snapshots" in options:
        migrated.setdefault("snapshots", [])

    result: dict[str, Any] = {}
    if client_info is not None:
        result["client_info"] = client_info
    if environment_info is not None:
        result["environment_info"] = environment_info
    result.update(migrated)
    return result


# ----------------------------------------------------------------------
# Per-snapshot config
# ----------------------------------------------------------------------


def _merge_widths(path, prev, next):
    # dedup, sort, and override widths when not empty
    return path, sorted(set(next)) if next else prev


def _merge_percy_css(path, prev, next):
    return path, "\n".join(css for css in (prev, next) if css)


def _merge_execute(path, prev, next):
    # a bare hook is shorthand for execute.before_snapshot
    if next is None:
        return None
    if isinstance(next, (list, tuple)) or not isinstance(next, Mapping):
        return path + ("before_snapshot",), next
    return (path,)


def _is_additional_snapshot(path) -> bool:
    return len(path) == 2 and path[0] == "additional_snapshots"


def snapshot_merge_rules(options: Mapping[str, Any]) -> list:
    """Merge rules bound to one snapshot's URL and name."""
    url = options["url"]
    name = options.get("name") or ""

    def merge_disallowed(path, prev, next):
        # the root hostname can never be disallowed
        combined = list(prev or []) + list(next or [])
        return path, [h for h in combined if not hostname_matches(h, url)]

    def name_additional(path, prev, next):
        # ensure additional snapshots have complete names
        next = dict(next or {})
        prefix = next.pop("prefix", None) or ""
        suffix = next.pop("suffix", None) or ""
        if not next.get("name"):
            next["name"] = f"{prefix}{name}{suffix}"
        return path, next

    return [
        ("widths", _merge_widths),
        ("percy_css", _merge_percy_css),
        ("execute", _merge_execute),
        ("discovery.disallowed_hostnames", merge_disallowed),
        (_is_additional_snapshot, name_additional),
    ]


def get_snapshot_config(context: "Orchestrator", options: Mapping[str, Any]) -> dict[str, Any]:
    """Return snapshot options merged with defaults and global options."""
    config = context.config
    return merge([
        {
            "widths": list(config.snapshot.widths),
            "discovery": {"allowed_hostnames": [hostname_of(validate_url(options.get("url")))]},
            "meta": {"snapshot": {"name": options.get("name")}, "build": context.build},
        },
        config.snapshot_defaults(),
        # only specific discovery options are used per-snapshot
        {"discovery": config.snapshot_discovery()},
        options,
    ], snapshot_merge_rules(options))


def map_snapshot_options(
    context: "Orchestrator",
    snapshots: Optional[list[Any]],
    config: Optional[Mapping[str, Any]] = None,
) -> list[SnapshotSpec]:
    """Filter snapshots by include/exclude and resolve each into a SnapshotSpec."""
    if not snapshots:
        return []
    config = config or {}

    rules = config.get("options") or []
    if isinstance(rules, Mapping):
        rules = [rules]

    # compose the option rules so the first rule ends up applied first
    def apply_options(snapshot: dict) -> dict:
        return get_snapshot_config(context, snapshot)

    for rule in reversed(rules):
        apply_options = _option_rule(rule, apply_options)

    resolved = []
    for snapshot in snapshots:
        # transform snapshot URL shorthand into an object
        snapshot = dict(snapshot) if isinstance(snapshot, Mapping) else {"url": _snapshot_url(snapshot)}

        # normalize the snapshot url and use it for the default name
        url = validate_url(snapshot.get("url"), config.get("base_url"))
        snapshot["name"] = snapshot.get("name") or snapshot_name_from_url(url)
        snapshot["url"] = url

        if snapshot_matches(snapshot, config):
            resolved.append(SnapshotSpec.model_validate(apply_options(snapshot)))

    return resolved


def _snapshot_url(snapshot: Any) -> Any:
    if isinstance(snapshot, str):
        return snapshot
    if isinstance(snapshot, Mapping):
        return snapshot.get("url")
    return None

def _option_rule(rule: Mapping[str, Any], next_step):
    include = rule.get("include")
    exclude = rule.get("exclude")
    extra = {k: v for k, v in rule.items() if k not in ("include", "exclude")}

    def apply(snapshot: dict) -> dict:
        if snapshot_matches(snapshot, include, exclude):
            snapshot = {**snapshot, **extra}
        return next_step(snapshot)

    return apply

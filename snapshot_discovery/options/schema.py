"""Snapshot option schemas: key migration and validation with scrubbing."""

from __future__ import annotations

import copy
import logging
import typing
from collections.abc import Mapping
from typing import Annotated, Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_snake

from snapshot_discovery.errors import SchemaViolation

logger = logging.getLogger(__name__)

Width = Annotated[int, Field(ge=10, le=2000)]
Hook = Union[str, list[Any], Callable[..., Any]]
Predicate = Any

# Spellings the generic camelCase conversion gets wrong
_RENAMES = {
    "percyCSS": "percy_css",
    "enableJavaScript": "enable_javascript",
    "baseUrl": "base_url",
    "baseURL": "base_url",
    "cleanUrls": "clean_urls",
}

# Guards against a scrub that never converges
_MAX_PASSES = 10


class _Schema(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AuthorizationOptions(_Schema):
    username: str
    password: Optional[str] = None


class DiscoveryOptions(_Schema):
    allowed_hostnames: Optional[list[str]] = None
    disallowed_hostnames: Optional[list[str]] = None
    network_idle_timeout: Optional[Annotated[int, Field(ge=1, le=750)]] = None
    request_headers: Optional[dict[str, str]] = None
    authorization: Optional[AuthorizationOptions] = None
    disable_cache: Optional[bool] = None
    user_agent: Optional[str] = None


class ExecuteOptions(_Schema):
    after_navigation: Optional[Hook] = None
    before_resize: Optional[Hook] = None
    after_resize: Optional[Hook] = None
    before_snapshot: Optional[Hook] = None


class AdditionalSnapshotOptions(_Schema):
    name: Optional[str] = None
    prefix: Optional[str] = None
    suffix: Optional[str] = None
    wait_for_timeout: Optional[Annotated[int, Field(ge=0, le=30000)]] = None
    wait_for_selector: Optional[str] = None
    execute: Optional[Union[ExecuteOptions, Hook]] = None


class _CommonSnapshotOptions(_Schema):
    widths: Optional[list[Width]] = None
    min_height: Optional[Annotated[int, Field(ge=10, le=2000)]] = None
    percy_css: Optional[str] = None
    enable_javascript: Optional[bool] = None
    discovery: Optional[DiscoveryOptions] = None


class SnapshotOptions(_CommonSnapshotOptions):
    """``/snapshot`` — a single URL snapshot."""

    url: Optional[str] = None
    name: Optional[str] = None
    wait_for_timeout: Optional[Annotated[int, Field(ge=0, le=30000)]] = None
    wait_for_selector: Optional[str] = None
    execute: Optional[Union[ExecuteOptions, Hook]] = None
    additional_snapshots: Optional[list[AdditionalSnapshotOptions]] = None


class DomSnapshotOptions(_CommonSnapshotOptions):
    """``/snapshot/dom`` — a snapshot of pre-captured markup."""

    url: Optional[str] = None
    name: Optional[str] = None
    dom_snapshot: Optional[str] = None


class OptionsRule(_CommonSnapshotOptions):
    """Extra options applied to snapshots matching ``include``/``exclude``."""

    include: Predicate = None
    exclude: Predicate = None
    wait_for_timeout: Optional[Annotated[int, Field(ge=0, le=30000)]] = None
    wait_for_selector: Optional[str] = None
    execute: Optional[Union[ExecuteOptions, Hook]] = None
    additional_snapshots: Optional[list[AdditionalSnapshotOptions]] = None


class _SnapshotFilters(_Schema):
    include: Predicate = None
    exclude: Predicate = None
    options: Optional[Union[OptionsRule, list[OptionsRule]]] = None


class SitemapOptions(_SnapshotFilters):
    """``/snapshot/sitemap`` — snapshots for every URL in a sitemap."""

    sitemap: Optional[str] = None


class SnapshotListOptions(_SnapshotFilters):
    """``/snapshot/list`` — an explicit (or lazily produced) list of snapshots."""

    base_url: Optional[str] = None
    snapshots: Optional[list[Union[str, SnapshotOptions]]] = None


class ServerOptions(SnapshotListOptions):
    """``/snapshot/server`` — snapshots of a locally served directory."""

    serve: Optional[str] = None
    port: Optional[Annotated[int, Field(ge=1, le=65535)]] = None
    base_url: Optional[Annotated[str, Field(pattern=r"^/")]] = None
    clean_urls: Optional[bool] = None
    rewrites: Optional[dict[str, str]] = None


SCHEMAS: dict[str, type[BaseModel]] = {
    "/snapshot": SnapshotOptions,
    "/snapshot/dom": DomSnapshotOptions,
    "/snapshot/sitemap": SitemapOptions,
    "/snapshot/server": ServerOptions,
    "/snapshot/list": SnapshotListOptions,
}


# ----------------------------------------------------------------------
# Migration
# ----------------------------------------------------------------------


def _nested_model(annotation: Any) -> type[BaseModel] | None:
    """Find the first model class inside a (possibly generic) annotation."""
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    for arg in typing.get_args(annotation):
        found = _nested_model(arg)
        if found is not None:
            return found
    return None


def _migrate_object(data: Mapping[str, Any], model: type[BaseModel]) -> dict[str, Any]:
    fields = model.model_fields
    migrated: dict[str, Any] = {}
    for key, value in data.items():
        name = key
        if key not in fields:
            candidate = _RENAMES.get(key) or to_snake(key)
            if candidate in fields:
                name = candidate

        field = fields.get(name)
        nested = _nested_model(field.annotation) if field is not None else None
        if nested is not None:
            value = _migrate_value(value, nested)
        else:
            value = _detached(value)
        migrated[name] = value
    return migrated


def _detached(value: Any) -> Any:
    """Copy plain option data so scrubbing never touches the caller's objects.

    Callables (deferred snapshot lists, hooks, predicates) are kept by reference.
    """
    if isinstance(value, Mapping):
        return {k: _detached(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_detached(item) for item in value]
    if callable(value):
        return value
    return copy.deepcopy(value)


def _migrate_value(value: Any, model: type[BaseModel]) -> Any:
    if isinstance(value, Mapping):
        return _migrate_object(value, model)
    if isinstance(value, list):
        return [_migrate_value(item, model) for item in value]
    return _detached(value)


def migrate(options: Mapping[str, Any], schema_id: str) -> dict[str, Any]:
    """Return a deep copy of the options with known keys renamed to their field names."""
    return _migrate_object(options, SCHEMAS[schema_id])


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------


def _resolve_loc(data: Any, loc: tuple) -> tuple:
    """Drop union tags from an error location, keeping keys present in the data."""
    resolved = []
    node = data
    for key in loc:
        if isinstance(node, Mapping) and key in node:
            node = node[key]
        elif isinstance(node, list) and isinstance(key, int) and 0 <= key < len(node):
            node = node[key]
        else:
            continue
        resolved.append(key)
    return tuple(resolved)


def _scrub(data: dict, path: tuple) -> None:
    node: Any = data
    for key in path[:-1]:
        node = node[key]
    if isinstance(node, list):
        node.pop(path[-1])
    else:
        node.pop(path[-1], None)


def _message(error: dict) -> str:
    if error["type"] == "extra_forbidden":
        return "unknown property"
    return error["msg"][:1].lower() + error["msg"][1:]


def _collect(options: dict, exc: ValidationError) -> dict[tuple, str]:
    found: dict[tuple, str] = {}
    for error in exc.errors():
        path = _resolve_loc(options, error["loc"])
        found.setdefault(path, _message(error))
    # the most specific location wins over its parents
    return {
        path: msg for path, msg in found.items()
        if not any(other != path and other[:len(path)] == path for other in found)
    }


def validate(options: dict, schema_id: str) -> list[SchemaViolation] | None:
    """Validate options in place, scrubbing every invalid value.

    Returns the list of violations, or None when the options were valid.
    """
    model = SCHEMAS[schema_id]
    violations: list[SchemaViolation] = []

    for _ in range(_MAX_PASSES):
        try:
            model.model_validate(options)
            break
        except ValidationError as exc:
            problems = _collect(options, exc)

        scrubbable = sorted((p for p in problems if p), reverse=True)
        for path in problems:
            dotted = ".".join(str(k) for k in path) or "<root>"
            violations.append(SchemaViolation(dotted, problems[path]))
        if not scrubbable:
            logger.debug("Unable to scrub invalid %s options", schema_id)
            break
        for path in scrubbable:
            _scrub(options, path)

    return violations or None

"""Deep merge of option dictionaries with per-path override rules."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, Callable, Iterable, Optional, Sequence, Union

Path = tuple
# transform(path, prev, next) -> None | (path,) | (path, value)
Transform = Callable[[Path, Any, Any], Optional[tuple]]
Matcher = Union[str, Callable[[Path], bool]]
Rule = tuple[Matcher, Transform]


def dotted(path: Path) -> str:
    return ".".join(str(k) for k in path)


def _is_absent(value: Any) -> bool:
    """None and empty containers never override a previous value."""
    if value is None:
        return True
    return isinstance(value, (list, tuple, Mapping)) and not value


def _find_rule(rules: Sequence[Rule], path: Path) -> Optional[Transform]:
    joined = dotted(path)
    for matcher, transform in rules:
        if (matcher == joined) if isinstance(matcher, str) else matcher(path):
            return transform
    return None


def _get(target: dict, path: Path) -> Any:
    node: Any = target
    for key in path:
        if isinstance(node, Mapping):
            node = node.get(key)
        elif isinstance(node, list) and isinstance(key, int) and key < len(node):
            node = node[key]
        else:
            return None
    return node


def _set(target: dict, path: Path, value: Any) -> None:
    node: Any = target
    for key, next_key in zip(path, path[1:]):
        child = node[key] if isinstance(node, list) else node.get(key)
        if not isinstance(child, (dict, list)):
            child = [] if isinstance(next_key, int) else {}
            _assign(node, key, child)
        node = child
    _assign(node, path[-1], value)


def _assign(node: Any, key: Any, value: Any) -> None:
    if isinstance(node, list):
        node.extend([None] * (key + 1 - len(node)))
    node[key] = value


def _merge_value(target: dict, path: Path, value: Any, rules: Sequence[Rule]) -> None:
    prev = _get(target, path)

    transform = _find_rule(rules, path)
    if transform is not None:
        result = transform(path, prev, value)
        if result:
            path = tuple(result[0])
            if len(result) > 1:
                _set(target, path, result[1])
                return
            prev = _get(target, path)

    if _is_absent(value):
        return

    if isinstance(value, Mapping):
        if not isinstance(prev, dict):
            _set(target, path, {})
        for key, child in value.items():
            _merge_value(target, path + (key,), child, rules)
    elif isinstance(value, (list, tuple)):
        # lists replace, but every element is visited so element rules apply
        _set(target, path, [])
        for index, child in enumerate(value):
            child_path = path + (index,)
            if _find_rule(rules, child_path):
                _merge_value(target, child_path, child, rules)
            elif isinstance(child, Mapping):
                _set(target, child_path, {})
                for key, grandchild in child.items():
                    _merge_value(target, child_path + (key,), grandchild, rules)
            else:
                _set(target, child_path, copy.copy(child))
    else:
        _set(target, path, value)


def merge(sources: Iterable[Optional[Mapping[str, Any]]], rules: Sequence[Rule] = ()) -> dict:
    """Merge mappings left to right into a new dict.

    ``rules`` are ``(matcher, transform)`` pairs checked at every visited path;
    a matcher is a dotted path string or a callable over the path tuple. The
    transform returns ``None`` for default handling, ``(path,)`` to continue
    default handling at another path, or ``(path, value)`` to set a value.
    """
    target: dict = {}
    for source in sources:
        if not source:
            continue
        for key, value in source.items():
            _merge_value(target, (key,), value, rules)
    return target

"""Include/exclude predicate matching for snapshot names.

A predicate is one of:

- a string: exact name, glob pattern, or ``/pattern/flags`` regular expression
- a compiled ``re.Pattern``
- a callable receiving the whole snapshot and returning a truthy value
- a list of predicates, any of which may match
"""

from __future__ import annotations

import functools
import re
from collections.abc import Mapping
from typing import Any, Callable, Union

Predicate = Union[str, "re.Pattern[str]", Callable[[Any], Any], list, tuple, None]

# Used to deserialize regular expression strings
_RE_LITERAL = re.compile(r"^/(.+)/(\w+)?$")

_RE_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "g": 0, "u": 0, "y": 0}


@functools.lru_cache(maxsize=256)
def _glob_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a glob into a regex. ``*`` stops at ``/``, ``**`` does not."""
    out = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if pattern.startswith("/", i):
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[" and "]" in pattern[i + 2:]:
            end = pattern.index("]", i + 2)
            body = pattern[i + 1:end].replace("\\", "\\\\")
            if body[0] in "!^":
                body = "^" + body[1:]
            out.append(f"[{body}]")
            i = end + 1
            continue
        elif c == "{" and "}" in pattern[i:]:
            end = pattern.index("}", i)
            options = pattern[i + 1:end].split(",")
            out.append("(?:" + "|".join(re.escape(o) for o in options) + ")")
            i = end + 1
            continue
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("^" + "".join(out) + "$")


def glob_matches(name: str, pattern: str) -> bool:
    """Match a glob; patterns without a slash match against the basename."""
    subject = name
    if "/" not in pattern:
        subject = name.rsplit("/", 1)[-1]
    return bool(_glob_regex(pattern).match(subject))


def _regex_literal_matches(name: str, predicate: str) -> bool:
    literal = _RE_LITERAL.match(predicate)
    source, flag_chars = (literal.group(1), literal.group(2) or "") if literal else (predicate, "")

    flags = 0
    for char in flag_chars:
        if char not in _RE_FLAGS:
            return False
        flags |= _RE_FLAGS[char]

    try:
        return re.search(source, name, flags) is not None
    except re.error:
        return False


def _test(snapshot: Mapping[str, Any], predicate: Predicate, fallback: bool) -> bool:
    name = snapshot.get("name") or ""

    if isinstance(predicate, str) and predicate:
        return (
            name == predicate
            or glob_matches(name, predicate)
            or _regex_literal_matches(name, predicate)
        )
    if isinstance(predicate, re.Pattern):
        return predicate.search(name) is not None
    if callable(predicate):
        return bool(predicate(snapshot))
    if isinstance(predicate, (list, tuple)) and predicate:
        return any(_test(snapshot, p, False) for p in predicate)
    return fallback


def snapshot_matches(
    snapshot: Mapping[str, Any],
    include: Predicate | Mapping[str, Any] = None,
    exclude: Predicate = None,
) -> bool:
    """Return True if the snapshot is not excluded and is included.

    ``include`` may also be an options mapping carrying ``include``/``exclude`` keys.
    """
    if isinstance(include, Mapping) and (include.get("include") or include.get("exclude")):
        include, exclude = include.get("include"), include.get("exclude")
    elif isinstance(include, Mapping):
        include = None

    # nothing to match
    if not include and not exclude:
        return True
    return not _test(snapshot, exclude, False) and _test(snapshot, include, True)

"""``{{ path }}`` template references and dotted-path lookups.

Grammar: a marker is ``{{`` followed by a dotted path and ``}}``. Paths may
not contain braces and surrounding whitespace is ignored. Path segments walk
mappings by key and sequences by integer index. A marker whose path does not
resolve is left untouched. Markers inside spliced values are expanded too, so
resolving an already resolved value is a no-op.
"""

from __future__ import annotations

import json
import re
from typing import Any, FrozenSet, List, Mapping, Sequence

MARKER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

_MISSING = object()


def find_markers(value: Any) -> List[str]:
    """Return every marker path found in ``value`` (recursing into containers)."""
    if isinstance(value, str):
        return MARKER_PATTERN.findall(value)
    if isinstance(value, Mapping):
        found: List[str] = []
        for item in value.values():
            found.extend(find_markers(item))
        return found
    if isinstance(value, (list, tuple)):
        found = []
        for item in value:
            found.extend(find_markers(item))
        return found
    return []


def has_markers(value: Any) -> bool:
    return bool(find_markers(value))


def strip_markers(expression: str) -> str:
    """Turn ``"{{ a.b }}"`` into ``"a.b"``. Plain paths are returned trimmed."""
    match = MARKER_PATTERN.fullmatch(expression.strip())
    return match.group(1) if match else expression.strip()


def _walk(value: Any, segment: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(segment, _MISSING)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        try:
            return value[int(segment)]
        except (ValueError, IndexError):
            return _MISSING
    return _MISSING


def lookup(context: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Look up ``path`` in ``context``.

    The whole path is tried as a flat key first so that flattened bindings
    such as ``invoice.total`` win over walking the nested value.
    """
    path = strip_markers(path)
    if not path:
        return default
    if path in context:
        return context[path]

    current: Any = context
    for segment in path.split("."):
        current = _walk(current, segment.strip())
        if current is _MISSING:
            return default
    return current


def is_defined(context: Mapping[str, Any], path: str) -> bool:
    return lookup(context, path, _MISSING) is not _MISSING


def to_text(value: Any) -> str:
    """String form used when a value is spliced into a template."""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class _CyclicReference(Exception):
    pass


def _expand(template: str, context: Mapping[str, Any], active: FrozenSet[str]) -> str:
    def _replace(match: re.Match) -> str:
        path = match.group(1)
        if path in active:
            raise _CyclicReference(path)
        value = lookup(context, path, _MISSING)
        if value is _MISSING or value is None:
            return match.group(0)
        text = to_text(value)
        if "{{" not in text:
            return text
        try:
            return _expand(text, context, active | {path})
        except _CyclicReference:
            if active:
                raise
            # the outermost marker of a cycle is left as written
            return match.group(0)

    return MARKER_PATTERN.sub(_replace, template)


def resolve(template: Any, context: Mapping[str, Any]) -> Any:
    """Replace markers in a string. Non-strings are returned unchanged.

    Markers inside a spliced value are resolved against the same context, so
    the result never holds a marker that a second pass could expand. A marker
    whose value leads back to itself is kept verbatim.
    """
    if not isinstance(template, str) or "{{" not in template:
        return template
    return _expand(template, context, frozenset())


def resolve_value(value: Any, context: Mapping[str, Any]) -> Any:
    """Resolve markers in every string nested inside ``value``."""
    if isinstance(value, str):
        return resolve(value, context)
    if isinstance(value, Mapping):
        return {key: resolve_value(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_value(item, context) for item in value]
    if isinstance(value, tuple):
        return tuple(resolve_value(item, context) for item in value)
    return value

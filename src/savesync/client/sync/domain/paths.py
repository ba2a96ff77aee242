"""Dotted-path access into payload trees.

Keys are joined with "." and a key that contains "." or "\\" has those
characters backslash-escaped, so every path names exactly one node:
{"item.sword": 1} is "item\\.sword" while {"item": {"sword": 1}} is
"item.sword".
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

SEPARATOR = "."
ESCAPE = "\\"

_MISSING = object()


def escape_key(key: str) -> str:
    """Escape one key for use as a path segment."""
    return key.replace(ESCAPE, ESCAPE * 2).replace(SEPARATOR, ESCAPE + SEPARATOR)


def join_path(prefix: str, key: str) -> str:
    """Append a key to a dotted path."""
    key = escape_key(key)
    return f"{prefix}{SEPARATOR}{key}" if prefix else key


def split_path(path: str) -> list[str]:
    """Split a dotted path into its unescaped keys."""
    if not path:
        raise ValueError("Empty field path")
    keys: list[str] = []
    current: list[str] = []
    chars = iter(path)
    for char in chars:
        if char == ESCAPE:
            escaped = next(chars, None)
            if escaped is None:
                raise ValueError(f"Dangling escape in field path: {path!r}")
            current.append(escaped)
        elif char == SEPARATOR:
            keys.append("".join(current))
            current = []
        else:
            current.append(char)
    keys.append("".join(current))
    return keys


def get_path(tree: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read the value at a dotted path, or default if any key is missing."""
    node: Any = tree
    for key in split_path(path):
        if not isinstance(node, Mapping):
            return default
        node = node.get(key, _MISSING)
        if node is _MISSING:
            return default
    return node


def set_path(tree: dict[str, Any], path: str, value: Any) -> None:
    """Write a value at a dotted path, creating intermediate mappings.

    A non-mapping found on the way is replaced by a mapping.
    """
    keys = split_path(path)
    node = tree
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = value


def iter_leaves(tree: Mapping[str, Any], prefix: str = "") -> Iterator[tuple[str, Any]]:
    """Yield (path, value) for every non-mapping node, depth first."""
    for key, value in tree.items():
        path = join_path(prefix, str(key))
        if isinstance(value, Mapping) and value:
            yield from iter_leaves(value, path)
        else:
            yield path, value

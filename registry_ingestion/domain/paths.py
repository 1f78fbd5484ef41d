"""
Lenient path lookup over JSON trees.

Documents arrive from several vendors with no fixed contract, so every read
goes through ``get_path``: a dotted path that never raises and returns the
``MISSING`` sentinel when any step is absent.  ``None`` is a real value
(JSON null) and is distinct from ``MISSING``.
"""

from __future__ import annotations

from typing import Any, Iterator, Sequence


class _Missing:
    """Sentinel type for an absent path."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()

PathLike = str | Sequence[str]


def _split(path: PathLike) -> list[str]:
    if isinstance(path, str):
        return [p for p in (s.strip() for s in path.split(".")) if p]
    return list(path)


def get_path(data: Any, path: PathLike) -> Any:
    """Follow a dotted path into dicts and lists. Returns MISSING if absent."""
    node = data
    for key in _split(path):
        if isinstance(node, dict):
            if key not in node:
                return MISSING
            node = node[key]
        elif isinstance(node, list):
            try:
                node = node[int(key)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return node


def is_present(value: Any) -> bool:
    """True for anything except MISSING, None and blank strings."""
    if value is MISSING or value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def first_present(data: Any, paths: Sequence[PathLike]) -> Any:
    """Value at the first path whose value is present, else MISSING."""
    for path in paths:
        value = get_path(data, path)
        if is_present(value):
            return value
    return MISSING


def get_mapping(data: Any, path: PathLike) -> dict[str, Any] | None:
    """Dict at ``path``, or None when absent or not a dict."""
    value = get_path(data, path)
    return value if isinstance(value, dict) else None


def is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def walk(node: Any, path: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], Any]]:
    """
    Depth-first, pre-order traversal yielding ``(path, value)`` for every
    node below ``node``.  List indices appear in the path as strings.
    """
    if isinstance(node, dict):
        for key, value in node.items():
            child = path + (str(key),)
            yield child, value
            yield from walk(value, child)
    elif isinstance(node, list):
        for index, value in enumerate(node):
            child = path + (str(index),)
            yield child, value
            yield from walk(value, child)


def format_path(path: Sequence[str]) -> str:
    return ".".join(path)

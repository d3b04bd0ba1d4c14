"""Dot-path access into JSON-like records.

Paths are dot separated; segments that are decimal integers index into
lists (``"tags.0.name"``). Reads and deletes on missing paths are no-ops;
writes create intermediate dicts as needed.
"""

from typing import Any


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def split_path(path: str) -> list[str]:
    return [part for part in path.split(".") if part != ""]


def _index(part: str) -> int | None:
    return int(part) if part.isdigit() else None


def _child(container: Any, part: str) -> Any:
    if isinstance(container, dict):
        return container.get(part, MISSING)
    if isinstance(container, list):
        idx = _index(part)
        if idx is not None and idx < len(container):
            return container[idx]
    return MISSING


def get_by_path(record: Any, path: str) -> Any:
    """Return the value at ``path`` or ``MISSING`` if any segment is absent."""
    parts = split_path(path)
    if not parts:
        return MISSING
    current = record
    for part in parts:
        current = _child(current, part)
        if current is MISSING:
            return MISSING
    return current


def set_by_path(record: dict[str, Any], path: str, value: Any) -> None:
    """Write ``value`` at ``path``, creating intermediate dicts.

    A non-container value sitting on the way is replaced by a dict.
    """
    parts = split_path(path)
    if not parts:
        raise ValueError("Path must not be empty")

    current: Any = record
    for part in parts[:-1]:
        child = _child(current, part)
        if not isinstance(child, (dict, list)):
            child = {}
            _assign(current, part, child)
        current = child
    _assign(current, parts[-1], value)


def _assign(container: Any, part: str, value: Any) -> None:
    if isinstance(container, list):
        idx = _index(part)
        if idx is None:
            raise ValueError(f"Cannot use key {part!r} on a list")
        while len(container) <= idx:
            container.append(None)
        container[idx] = value
    else:
        container[part] = value


def delete_by_path(record: Any, path: str) -> bool:
    """Remove the value at ``path``. Returns whether anything was removed."""
    parts = split_path(path)
    if not parts:
        return False
    parent = record if len(parts) == 1 else get_by_path(record, ".".join(parts[:-1]))
    last = parts[-1]
    if isinstance(parent, dict) and last in parent:
        del parent[last]
        return True
    if isinstance(parent, list):
        idx = _index(last)
        if idx is not None and idx < len(parent):
            del parent[idx]
            return True
    return False

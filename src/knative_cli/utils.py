"""Utility helpers shared across the kn CLI package."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import UsageError


def nested_get(document: Optional[Dict[str, Any]], *path: str, default: Any = None) -> Any:
    """Follow ``path`` through nested mappings, returning ``default`` on any miss."""

    current: Any = document
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    if current is None:
        return default
    return current


def map_from_array(entries: Iterable[str], delimiter: str = "=", allow_singles: bool = True) -> Dict[str, str]:
    """Turn ``KEY=VALUE`` entries into a dict.

    With ``allow_singles`` a bare ``KEY`` maps to an empty value, which is how
    ``KEY-`` removal markers travel through the same flag.
    """

    result: Dict[str, str] = {}
    for entry in entries:
        if delimiter in entry:
            key, value = entry.split(delimiter, 1)
        elif allow_singles:
            key, value = entry, ""
        else:
            raise UsageError(f"Argument requires a value that contains the {delimiter} character; got {entry!r}")
        if not key:
            raise UsageError(f"The key is empty in {entry!r}")
        result[key] = value
    return result


def parse_minus_suffix(entries: Dict[str, str]) -> List[str]:
    """Pop keys written as ``key-`` out of ``entries`` and return them stripped."""

    removed: List[str] = []
    for key in list(entries):
        if key.endswith("-") and entries[key] == "":
            removed.append(key[:-1])
            del entries[key]
    return removed


def split_updates(entries: Iterable[str], delimiter: str = "=") -> Tuple[Dict[str, str], List[str]]:
    """Split repeated ``KEY=VALUE`` / ``KEY-`` flags into additions and removals."""

    updates = map_from_array(entries, delimiter)
    removals = parse_minus_suffix(updates)
    return updates, removals


def added_and_removed(entries: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Split list-valued flags into plain entries and ``entry-`` removals."""

    added: List[str] = []
    removed: List[str] = []
    for entry in entries:
        if entry.endswith("-"):
            removed.append(entry[:-1])
        else:
            added.append(entry)
    return added, removed


def apply_overrides(existing: Optional[Dict[str, str]], additions: Dict[str, str], removals: Iterable[str]) -> Dict[str, str]:
    """Add ``additions`` onto ``existing`` then drop ``removals``."""

    merged = dict(existing or {})
    merged.update(additions)
    for key in removals:
        merged.pop(key, None)
    return merged

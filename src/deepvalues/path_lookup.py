"""
Dotted path lookup into resolved records.

Used by template renderers to read ``author.name`` style placeholders out of a
resolved record. A missing segment is a normal outcome, not an error.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Sequence


@dataclass(frozen=True)
class PathLookup:
    """Result of find_value_by_path()."""
    value: Any
    found: bool


NOT_FOUND = PathLookup(value=None, found=False)


def find_value_by_path(obj: Mapping[str, Any], path: str) -> PathLookup:
    """Walk a dot-separated path through nested mappings.

    Digit segments index into lists (``items.0.title``).

    Args:
        obj: Record to read from
        path: Dotted path, e.g. ``"author.name"``

    Returns:
        PathLookup with found=False if any segment is missing
    """
    value: Any = obj
    for segment in path.split('.'):
        if isinstance(value, Mapping):
            if segment not in value:
                return NOT_FOUND
            value = value[segment]
        elif isinstance(value, Sequence) and not isinstance(value, str) and segment.isdigit():
            index = int(segment)
            if index >= len(value):
                return NOT_FOUND
            value = value[index]
        else:
            return NOT_FOUND
    return PathLookup(value=value, found=True)


def is_string(value: Any) -> bool:
    return isinstance(value, str)

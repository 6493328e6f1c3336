"""
Serialized snapshots of the edited record.

The host form may hand back the same container with mutated contents (nested
relational values are edited in place), so change detection compares
serialized forms instead of object identity.

Design:
- Immutable snapshots (frozen dataclass) holding the serialized text only
- Every read of ``values`` parses a fresh deep copy
- Key order does not matter (keys are sorted on serialization)
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Set
import json


def serialize_value(value: Any) -> str:
    """Serialize a JSON-like value for structural comparison."""
    return json.dumps(value, sort_keys=True, default=str)


@dataclass(frozen=True)
class RecordSnapshot:
    """Immutable serialized copy of an edited record."""
    serialized: str

    @classmethod
    def capture(cls, values: Optional[Mapping[str, Any]]) -> 'RecordSnapshot':
        return cls(serialized=serialize_value(dict(values or {})))

    @property
    def values(self) -> Dict[str, Any]:
        return json.loads(self.serialized)


def changed_fields(
    new: Mapping[str, Any],
    old: Mapping[str, Any],
    exclude: Optional[str] = None,
) -> Set[str]:
    """Return keys whose serialized value differs between old and new.

    A key present on only one side counts as changed, even when it holds None.

    Args:
        new: Current record
        old: Previous record
        exclude: Field to ignore (the display field fed by the resolved record)
    """
    changed = set()
    for key in set(old) | set(new):
        if key == exclude:
            continue
        if (key in new) != (key in old):
            changed.add(key)
        elif serialize_value(new[key]) != serialize_value(old[key]):
            changed.add(key)
    return changed


def with_removed_keys(new: Mapping[str, Any], old: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy new, adding every key of old that new lacks with a None value.

    Consumers merge resolved records into their own state, where a missing key
    would leave the stale value in place.
    """
    result = dict(new)
    for key in old:
        if key not in result:
            result[key] = None
    return result

"""
Relational field values.

Raw relational field values arrive in several shapes depending on what the
form did with them:

- Scalar: a foreign key id (many-to-one, untouched or re-selected)
- SingleEntity: a related record, with ``id`` when editing an existing entity
  and without it when creating one inline (many-to-one)
- MutationSet: pending ``create``/``update``/``delete`` edits (one-to-many)

The shape is decided once by parse_relation_value(). Everything downstream
works on the normalized MutationSet returned by to_mutation().
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union
import logging

logger = logging.getLogger(__name__)


def is_scalar_id(value: Any) -> bool:
    """True for values usable as a primary key (bool is excluded)."""
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class MutationSet:
    """Normalized pending edits for one relational field."""
    create: List[Dict[str, Any]] = field(default_factory=list)
    update: List[Dict[str, Any]] = field(default_factory=list)
    delete: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'MutationSet':
        return cls(
            create=list(data.get('create') or []),
            update=[item for item in (data.get('update') or []) if isinstance(item, Mapping)],
            delete=list(data.get('delete') or []),
        )

    def update_ids(self) -> List[Any]:
        return [item['id'] for item in self.update if 'id' in item]

    def update_for(self, item_id: Any) -> Optional[Dict[str, Any]]:
        """Return the pending update for item_id, matching ids by string form."""
        key = str(item_id)
        for item in self.update:
            if 'id' in item and str(item['id']) == key:
                return item
        return None

    def to_mutation(self) -> 'MutationSet':
        return self


@dataclass(frozen=True)
class Scalar:
    """Bare foreign key id."""
    id: Any

    def to_mutation(self) -> MutationSet:
        return MutationSet(update=[{'id': self.id}])


@dataclass(frozen=True)
class SingleEntity:
    """One related record, existing (has ``id``) or new (no ``id``)."""
    record: Dict[str, Any]

    def to_mutation(self) -> MutationSet:
        if 'id' in self.record:
            return MutationSet(update=[self.record])
        return MutationSet(create=[dict(self.record)])


RelationFieldValue = Union[Scalar, SingleEntity, MutationSet]


def parse_relation_value(raw: Any, is_many_to_one: bool) -> RelationFieldValue:
    """Decide the shape of a raw relational field value.

    Args:
        raw: Field value as found in the edited record
        is_many_to_one: True if the edited record holds the foreign key

    Returns:
        Scalar, SingleEntity or MutationSet. Many-to-one values of any other
        shape fall back to a MutationSet creating the raw value. One-to-many
        values that are not mutation objects (e.g. the plain list of linked
        ids) carry no pending edits.
    """
    if raw is None:
        return MutationSet()

    if is_many_to_one:
        if is_scalar_id(raw):
            return Scalar(raw)
        if isinstance(raw, Mapping):
            return SingleEntity(dict(raw))
        logger.debug(f"Unexpected many-to-one value {raw!r}, treating as create")
        return MutationSet(create=[raw])

    if isinstance(raw, Mapping):
        return MutationSet.from_dict(raw)
    return MutationSet()


def is_reset_transition(
    previous_raw: Any,
    current_raw: Any,
    is_many_to_one: bool,
    had_previous: bool = True,
) -> bool:
    """Detect the value shape change a form goes through after save/reload.

    After saving, a relational field reverts from pending-edit shape back to
    its stored shape (id for many-to-one, id list for one-to-many), so cached
    baselines no longer describe storage.

    Args:
        previous_raw: Field value on the previous record
        current_raw: Field value on the current record
        is_many_to_one: Relation kind of the field
        had_previous: Whether the previous record held the field at all. A
            many-to-one field that held None counts as object-shaped; one that
            was absent does not.
    """
    if is_many_to_one:
        if not is_scalar_id(current_raw):
            return False
        if previous_raw is None:
            return had_previous
        return isinstance(previous_raw, (Mapping, list))
    return isinstance(current_raw, list) and not isinstance(previous_raw, list)

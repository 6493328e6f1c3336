"""
Relation metadata and field classification.

A relation links a "many" collection (which holds the foreign key field) to a
"one" collection. Seen from the edited collection, a relational field is either:

- many-to-one: the edited collection holds the foreign key (``many_field``)
- one-to-many: another collection points back at the edited one, and the
  edited side exposes the reverse alias field (``one_field``)
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence
import logging

from deepvalues.errors import RelationConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelationDescriptor:
    """One relation between two collections.

    Attributes:
        collection: Collection holding the foreign key (many side)
        field: Foreign key field on ``collection``
        related_collection: Collection the foreign key points at (one side)
        one_field: Reverse alias field on ``related_collection``, if any
        many_field: Foreign key field name as exposed on the many side
    """
    collection: str
    field: str
    related_collection: Optional[str] = None
    one_field: Optional[str] = None
    many_field: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'RelationDescriptor':
        """Build a descriptor from a Directus relation payload.

        Raises:
            RelationConfigError: If ``collection`` or ``field`` is missing
        """
        for required in ('collection', 'field'):
            if not data.get(required):
                raise RelationConfigError(data, required)

        meta = data.get('meta') or {}
        return cls(
            collection=data['collection'],
            field=data['field'],
            related_collection=data.get('related_collection'),
            one_field=meta.get('one_field'),
            many_field=meta.get('many_field') or data['field'],
        )

    def references(self, field_key: str) -> bool:
        return field_key in (self.one_field, self.many_field)


@dataclass(frozen=True)
class RelationMatch:
    """Classification of one record field against the relation set."""
    relation: RelationDescriptor
    is_many_to_one: bool
    related_collection: Optional[str]
    counterpart_field_name: Optional[str]


def classify(
    relations: Iterable[RelationDescriptor],
    field_key: str,
    edited_collection: str,
) -> Optional[RelationMatch]:
    """Classify field_key relative to the edited collection.

    Args:
        relations: Relation descriptors scoped to the edited collection
        field_key: Record field to classify
        edited_collection: Collection of the record being edited

    Returns:
        RelationMatch, or None if no relation references field_key
    """
    relation = next((rel for rel in relations if rel.references(field_key)), None)
    if relation is None:
        return None

    if relation.collection == edited_collection:
        return RelationMatch(
            relation=relation,
            is_many_to_one=True,
            related_collection=relation.related_collection,
            counterpart_field_name=relation.many_field,
        )
    return RelationMatch(
        relation=relation,
        is_many_to_one=False,
        related_collection=relation.collection,
        counterpart_field_name=relation.one_field,
    )


class RelationStore:
    """In-memory set of relation descriptors for all collections.

    Loaded once by the caller (e.g. from the relations endpoint) and queried per
    collection. The engine never refreshes it.
    """

    def __init__(self, relations: Optional[Sequence[RelationDescriptor]] = None):
        self._relations: List[RelationDescriptor] = list(relations or [])

    def load(self, payload: Iterable[Mapping[str, Any]]) -> None:
        """Replace all descriptors from raw relation payloads."""
        self._relations = [RelationDescriptor.from_dict(item) for item in payload]
        logger.debug(f"Loaded {len(self._relations)} relations")

    def add(self, relation: RelationDescriptor) -> None:
        self._relations.append(relation)

    def all(self) -> List[RelationDescriptor]:
        return list(self._relations)

    def for_collection(self, collection: str) -> List[RelationDescriptor]:
        """Return relations where collection is either side."""
        return [
            rel for rel in self._relations
            if rel.collection == collection or rel.related_collection == collection
        ]

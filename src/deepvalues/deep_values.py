"""
Deep values engine: resolved records for display templates.

Takes the live record of an edit form and publishes a copy where every
relational field the template references is replaced by the related entities'
data, with pending (unsaved) relational edits merged in. A template such as
``{{author.name}}`` can then be rendered from the resolved record while the
user edits.

Lifecycle:
- One engine per edit session; caches live as long as the engine
- The host calls update_values() on every form change (or on_change() with
  the previous and current record if it tracks both itself)
- Subscribers of ``engine.resolved`` receive each published record

Recomputation is skipped when the only changed fields are not referenced by the
template. Each pass takes a generation number; a pass that finishes after a
newer one has started publishes nothing and drops its cache writes.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union
import logging

from deepvalues.client import ItemsFetcher
from deepvalues.config import DeepValuesConfig, get_config
from deepvalues.observable import Observable
from deepvalues.relation_cache import RelationCaches, item_key
from deepvalues.relation_values import MutationSet, is_reset_transition, parse_relation_value
from deepvalues.relations import RelationDescriptor, RelationMatch, classify
from deepvalues.snapshot import RecordSnapshot, changed_fields, with_removed_keys
from deepvalues.template import TemplateFieldMatcher

logger = logging.getLogger(__name__)


def should_recompute(
    template: Union[str, TemplateFieldMatcher],
    new: Mapping[str, Any],
    old: Optional[Mapping[str, Any]],
    computed_field: Optional[str] = None,
) -> bool:
    """Decide whether a record change can affect the rendered template.

    Args:
        template: Display template, or a matcher already bound to it
        new: Current record
        old: Previous record, None on the first call
        computed_field: Field fed by the resolved record, ignored when diffing

    Returns:
        True on the first call, when nothing changed, or when a changed field
        is referenced by the template
    """
    if old is None:
        return True

    changed = changed_fields(new, old, exclude=computed_field)
    if not changed:
        # update even if no fields changed
        return True

    if not isinstance(template, TemplateFieldMatcher):
        template = TemplateFieldMatcher(template)
    return template.any_referenced(changed)


def _as_id_list(data: Any) -> List[Any]:
    """Normalize a stored one-to-many field value into a list of ids."""
    if data is None:
        return []
    if not isinstance(data, list):
        data = [data]
    return [item.get('id') if isinstance(item, Mapping) else item for item in data]


class DeepValuesEngine:
    """Resolves relational fields of one edited record for template rendering."""

    def __init__(
        self,
        fetcher: ItemsFetcher,
        relations: Callable[[], Sequence[RelationDescriptor]],
        collection: str,
        template: str,
        pk: Any = None,
        computed_field: Optional[str] = None,
        current_user: Optional[Callable[[], Any]] = None,
        config: Optional[DeepValuesConfig] = None,
    ):
        """
        Initialize engine for one edit session.

        Args:
            fetcher: Remote reads (fetch_many / fetch_field)
            relations: Returns the relation descriptors of the edited collection.
                       Called on every pass, so it may reflect a live store.
            collection: Collection of the edited record
            template: Display template; fixed for the session
            pk: Primary key of the edited record, defaults to the new-record sentinel
            computed_field: Field this engine feeds; its own changes never trigger a pass
            current_user: Returns the session user, embedded in every resolved record
            config: Overrides the process default configuration
        """
        self.config = config or get_config()
        self.fetcher = fetcher
        self.collection = collection
        self.pk = pk if pk is not None else self.config.new_record_sentinel
        self.computed_field = computed_field
        self.matcher = TemplateFieldMatcher(template)
        self.caches = RelationCaches()
        self._relations = relations
        self._current_user = current_user or (lambda: None)

        self._last_snapshot: Optional[RecordSnapshot] = None
        self._generation = 0
        self._in_flight = 0

        self.resolved: Observable[Dict[str, Any]] = Observable(
            {self.config.current_user_key: self._current_user()}
        )

    @property
    def template(self) -> str:
        return self.matcher.template

    @property
    def is_recomputing(self) -> bool:
        return self._in_flight > 0

    async def update_values(self, values: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Feed the current form record.

        Compares against the record passed on the previous call by serialized
        content, so a container mutated in place is still seen as changed.

        Returns:
            The published resolved record, or None if nothing was published
        """
        snapshot = RecordSnapshot.capture(values)
        previous = self._last_snapshot
        if previous is not None and previous.serialized == snapshot.serialized:
            return None

        self._last_snapshot = snapshot
        return await self.on_change(previous.values if previous else None, snapshot.values)

    async def on_change(
        self,
        old: Optional[Mapping[str, Any]],
        new: Mapping[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Recompute the resolved record for a record change.

        Fetch errors propagate; the published record and the cache contents
        are then left as they were. A cache reset the failed or superseded pass
        detected still applies: later passes start from empty caches.

        Args:
            old: Previous record, None on the first call
            new: Current record

        Returns:
            The published resolved record, or None if the pass was skipped or
            superseded by a newer one
        """
        new_values = RecordSnapshot.capture(new).values
        old_values = RecordSnapshot.capture(old).values if old is not None else None

        if not should_recompute(self.matcher, new_values, old_values, self.computed_field):
            logger.debug(f"Skipping recompute for {self.collection}: no referenced field changed")
            return None

        self._generation += 1
        generation = self._generation
        staged = self.caches.stage()

        self._in_flight += 1
        try:
            resolved = await self._resolve(new_values, old_values or {}, staged)
        finally:
            self._in_flight -= 1

        if generation != self._generation:
            logger.debug(f"Discarding superseded pass {generation} (current {self._generation})")
            return None

        self.caches.commit(staged)
        self.resolved.set(resolved)
        return resolved

    async def _resolve(
        self,
        new: Dict[str, Any],
        old: Dict[str, Any],
        caches: RelationCaches,
    ) -> Dict[str, Any]:
        values = with_removed_keys(new, old)
        pk = values.get(self.config.primary_key_field) or self.pk
        relations = list(self._relations())

        relational_data: Dict[str, Any] = {}
        # Sequential: later fields may hit cache entries written by earlier ones
        for key in list(values):
            match = classify(relations, key, self.collection)
            if match is None or not self.matcher.references(key):
                continue
            relational_data[key] = await self._resolve_field(key, match, values, old, pk, caches)

        return {
            **values,
            **relational_data,
            self.config.current_user_key: self._current_user(),
        }

    async def _resolve_field(
        self,
        key: str,
        match: RelationMatch,
        values: Dict[str, Any],
        old: Dict[str, Any],
        pk: Any,
        caches: RelationCaches,
    ) -> Any:
        raw = values.get(match.counterpart_field_name) if match.counterpart_field_name else None

        if is_reset_transition(old.get(key), raw, match.is_many_to_one, had_previous=key in old):
            # Form reverted to stored shape (saved or reloaded)
            self.caches.reset(caches)

        mutation = parse_relation_value(raw, match.is_many_to_one).to_mutation()

        ids: List[Any] = []
        if not match.is_many_to_one:
            ids = await self._baseline_ids(key, pk, mutation, caches)
        ids += mutation.update_ids()

        data: List[Any] = []
        if ids and match.related_collection:
            data = await self._load_items(match.related_collection, ids, mutation, caches)

        # Created items have no id, so they are never cached or merged
        data += mutation.create

        if match.is_many_to_one:
            return data[0] if data else None
        return data

    async def _baseline_ids(
        self,
        key: str,
        pk: Any,
        mutation: MutationSet,
        caches: RelationCaches,
    ) -> List[Any]:
        """Ids linked in storage, minus those with pending updates or deletes."""
        if pk == self.config.new_record_sentinel:
            return []

        if key in caches.fields:
            stored = caches.fields.get(key)
        else:
            stored = await self.fetcher.fetch_field(self.collection, pk, key)
            caches.fields.put(key, stored)

        excluded = {item_key(item_id) for item_id in mutation.update_ids()}
        excluded.update(item_key(item_id) for item_id in mutation.delete)
        return [item_id for item_id in _as_id_list(stored) if item_key(item_id) not in excluded]

    async def _load_items(
        self,
        collection: str,
        ids: List[Any],
        mutation: MutationSet,
        caches: RelationCaches,
    ) -> List[Dict[str, Any]]:
        """Entities for ids, from cache when all are present, with pending updates merged."""
        if caches.items.has_all(collection, ids):
            logger.debug(f"Item cache hit for {collection}: {ids}")
        else:
            fetched = await self.fetcher.fetch_many(collection, ids)
            caches.items.put_many(collection, fetched, self.config.primary_key_field)

        resolved = []
        for item_id in ids:
            entity = caches.items.get(collection, item_id)
            if entity is None:
                continue
            resolved.append({**entity, **(mutation.update_for(item_id) or {})})
        return resolved

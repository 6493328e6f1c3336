"""
Caches for relational lookups within one edit session.

- FieldCache: field name -> baseline related ids last read from storage
- ItemCache: related collection -> (id -> last fetched entity)

Both are cleared together when the form reverts a relational value to its
stored shape (after save/reload). A recomputation works on a staged copy and
commits it only if it is still the newest pass. A reset is recorded on the
session caches as soon as a pass detects it, so passes staged afterwards start
empty even if the detecting pass never commits.
"""

from typing import Any, Dict, Iterable, Mapping, Optional
import logging

logger = logging.getLogger(__name__)


def item_key(item_id: Any) -> str:
    """Cache key for an entity id. ``5`` and ``"5"`` share one entry."""
    return str(item_id)


class FieldCache:
    """Baseline related ids per relational field."""

    def __init__(self, entries: Optional[Mapping[str, Any]] = None):
        self._cache: Dict[str, Any] = dict(entries or {})

    def __contains__(self, field_name: str) -> bool:
        return field_name in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, field_name: str) -> Any:
        return self._cache.get(field_name)

    def put(self, field_name: str, value: Any) -> None:
        self._cache[field_name] = value

    def invalidate(self) -> None:
        self._cache.clear()

    def copy(self) -> 'FieldCache':
        return FieldCache(self._cache)


class ItemCache:
    """Fetched entities per related collection, merged on every fetch."""

    def __init__(self, entries: Optional[Mapping[str, Mapping[str, Dict[str, Any]]]] = None):
        self._cache: Dict[str, Dict[str, Dict[str, Any]]] = {
            collection: dict(items) for collection, items in (entries or {}).items()
        }

    def __len__(self) -> int:
        return sum(len(items) for items in self._cache.values())

    def has_all(self, collection: str, ids: Iterable[Any]) -> bool:
        """True if every id is cached for collection."""
        items = self._cache.get(collection)
        if items is None:
            return False
        return all(item_key(item_id) in items for item_id in ids)

    def get(self, collection: str, item_id: Any) -> Any:
        return self._cache.get(collection, {}).get(item_key(item_id))

    def put_many(self, collection: str, entities: Iterable[Dict[str, Any]], pk_field: str = 'id') -> None:
        """Merge fetched entities into the collection, overwriting by id."""
        items = self._cache.setdefault(collection, {})
        for entity in entities:
            if pk_field in entity:
                items[item_key(entity[pk_field])] = entity

    def invalidate(self) -> None:
        self._cache.clear()

    def copy(self) -> 'ItemCache':
        return ItemCache(self._cache)


class RelationCaches:
    """FieldCache and ItemCache for one edit session."""

    def __init__(self, field_cache: Optional[FieldCache] = None, item_cache: Optional[ItemCache] = None):
        self.fields = field_cache if field_cache is not None else FieldCache()
        self.items = item_cache if item_cache is not None else ItemCache()
        # Resets requested on the session vs. resets a staged copy accounts for
        self._resets_requested = 0
        self._resets_seen = 0

    def invalidate(self) -> None:
        """Clear both caches."""
        self.fields.invalidate()
        self.items.invalidate()
        logger.debug("Relation caches invalidated")

    @property
    def reset_pending(self) -> bool:
        """True while no committed pass has seen the latest reset."""
        return self._resets_seen < self._resets_requested

    def stage(self) -> 'RelationCaches':
        """Return an independent working copy for one recomputation.

        The copy starts empty while a reset is pending.
        """
        if self.reset_pending:
            staged = RelationCaches()
        else:
            staged = RelationCaches(self.fields.copy(), self.items.copy())
        staged._resets_seen = self._resets_requested
        return staged

    def reset(self, staged: 'RelationCaches') -> None:
        """Clear a staged copy and mark the session caches stale.

        Every copy staged from now on starts empty until a pass that saw this
        reset commits.
        """
        self._resets_requested += 1
        staged.invalidate()
        staged._resets_seen = self._resets_requested

    def commit(self, staged: 'RelationCaches') -> None:
        """Adopt the contents of a staged copy."""
        self.fields = staged.fields
        self.items = staged.items
        self._resets_seen = max(self._resets_seen, staged._resets_seen)

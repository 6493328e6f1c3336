"""Pytest configuration and shared fixtures."""
import asyncio
import pytest

from deepvalues import RelationDescriptor, reset_config


class FakeFetcher:
    """In-memory ItemsFetcher that records every call."""

    def __init__(self, items=None, fields=None):
        self.items = items or {}    # collection -> {id: entity}
        self.fields = fields or {}  # (collection, pk, field) -> stored value
        self.many_calls = []
        self.field_calls = []
        self.error = None
        self.gate = None  # asyncio.Event to hold fetch_many until set

    @property
    def call_count(self):
        return len(self.many_calls) + len(self.field_calls)

    async def fetch_many(self, collection, ids):
        self.many_calls.append((collection, list(ids)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        stored = self.items.get(collection, {})
        return [dict(stored[i]) for i in ids if i in stored]

    async def fetch_field(self, collection, pk, field_name):
        self.field_calls.append((collection, pk, field_name))
        if self.error is not None:
            raise self.error
        await asyncio.sleep(0)
        return self.fields.get((collection, pk, field_name))


@pytest.fixture(autouse=True)
def reset_framework_config():
    """Reset the process default configuration around each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def relations():
    """articles.author -> authors (many-to-one), comments.article -> articles (one-to-many)."""
    return [
        RelationDescriptor(
            collection='articles',
            field='author',
            related_collection='authors',
            one_field='articles',
            many_field='author',
        ),
        RelationDescriptor(
            collection='comments',
            field='article',
            related_collection='articles',
            one_field='comments',
            many_field='article',
        ),
    ]


@pytest.fixture
def fetcher():
    """Provide a fetcher with authors 5 and 7 and comments 1-4 of article 42."""
    return FakeFetcher(
        items={
            'authors': {
                5: {'id': 5, 'name': 'Ada'},
                7: {'id': 7, 'name': 'Grace', 'note': 'stored'},
            },
            'comments': {
                1: {'id': 1, 'title': 'first'},
                2: {'id': 2, 'title': 'second'},
                3: {'id': 3, 'title': 'third'},
                4: {'id': 4, 'title': 'fourth'},
            },
        },
        fields={
            ('articles', 42, 'comments'): [1, 2, 3],
        },
    )

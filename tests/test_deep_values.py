"""Tests for the deep values engine.

Tests run against an in-memory fetcher that records every remote call, so
cache behavior is asserted through call counts.
"""
import asyncio
import json

import pytest

from deepvalues import DeepValuesConfig, DeepValuesEngine, FetchFailure

pytestmark = pytest.mark.asyncio

TEMPLATE = "{{title}} by {{author.name}} ({{comments}})"


@pytest.fixture
def make_engine(fetcher, relations):
    """Build engines over the shared fetcher and relations."""
    def factory(template=TEMPLATE, **kwargs):
        kwargs.setdefault('current_user', lambda: {'id': 'u1'})
        return DeepValuesEngine(
            fetcher=fetcher,
            relations=lambda: relations,
            collection='articles',
            template=template,
            **kwargs,
        )
    return factory


class TestInitialPopulation:
    """Test the first pass."""

    async def test_first_pass_publishes_without_placeholders(self, make_engine, fetcher):
        engine = make_engine(template="static text")
        result = await engine.update_values({'title': 'Hello', 'author': 5})

        assert result == {'title': 'Hello', 'author': 5, '__currentUser': {'id': 'u1'}}
        assert engine.resolved.value is result
        assert fetcher.call_count == 0

    async def test_initial_value_holds_current_user(self, make_engine):
        engine = make_engine()
        assert engine.resolved.value == {'__currentUser': {'id': 'u1'}}

    async def test_subscribers_notified(self, make_engine):
        engine = make_engine()
        received = []
        engine.resolved.subscribe(received.append)

        await engine.update_values({'title': 'Hello'})

        assert received == [engine.resolved.value]

    async def test_current_user_key_configurable(self, make_engine):
        engine = make_engine(config=DeepValuesConfig(current_user_key='$user'))
        result = await engine.update_values({'title': 'Hello'})
        assert result['$user'] == {'id': 'u1'}
        assert '__currentUser' not in result


class TestManyToOne:
    """Test many-to-one resolution."""

    async def test_scalar_id_fetched_once_then_cached(self, make_engine, fetcher):
        engine = make_engine()

        result = await engine.update_values({'title': 'a', 'author': 5})
        assert result['author'] == {'id': 5, 'name': 'Ada'}
        assert fetcher.many_calls == [('authors', [5])]

        result = await engine.update_values({'title': 'b', 'author': 5})
        assert result['author'] == {'id': 5, 'name': 'Ada'}
        assert len(fetcher.many_calls) == 1

    async def test_string_id_hits_cache_of_numeric_id(self, make_engine, fetcher):
        engine = make_engine()
        await engine.update_values({'author': 5})
        result = await engine.update_values({'author': '5'})

        assert result['author']['name'] == 'Ada'
        assert len(fetcher.many_calls) == 1

    async def test_entity_with_id_overrides_fetched_fields(self, make_engine, fetcher):
        engine = make_engine()
        result = await engine.update_values({'author': {'id': 7, 'note': 'x'}})

        assert result['author'] == {'id': 7, 'name': 'Grace', 'note': 'x'}
        assert fetcher.many_calls == [('authors', [7])]

    async def test_entity_without_id_is_created_inline(self, make_engine, fetcher):
        engine = make_engine()
        result = await engine.update_values({'author': {'name': 'New'}})

        assert result['author'] == {'name': 'New'}
        assert fetcher.call_count == 0

    async def test_none_resolves_to_none(self, make_engine, fetcher):
        engine = make_engine()
        result = await engine.update_values({'author': None})

        assert result['author'] is None
        assert fetcher.call_count == 0

    async def test_object_to_scalar_clears_caches(self, make_engine, fetcher):
        """Reverting from an edited entity to a bare id refetches."""
        engine = make_engine()
        await engine.update_values({'author': {'id': 5, 'name': 'Edited'}})
        result = await engine.update_values({'author': 5})

        assert result['author'] == {'id': 5, 'name': 'Ada'}
        assert fetcher.many_calls == [('authors', [5]), ('authors', [5])]

    async def test_cleared_to_scalar_clears_caches(self, make_engine, fetcher):
        """A field that held None reverting to an id refetches."""
        engine = make_engine()
        await engine.update_values({'author': 5})
        await engine.update_values({'author': None})
        result = await engine.update_values({'author': 5})

        assert result['author'] == {'id': 5, 'name': 'Ada'}
        assert fetcher.many_calls == [('authors', [5]), ('authors', [5])]

    async def test_unknown_related_collection_keeps_creates_only(self, fetcher):
        from deepvalues import RelationDescriptor
        relation = RelationDescriptor('articles', 'owner', None, many_field='owner')
        engine = DeepValuesEngine(fetcher, lambda: [relation], 'articles', "{{owner}}")

        assert (await engine.update_values({'owner': 3}))['owner'] is None
        assert (await engine.update_values({'owner': {'name': 'x'}}))['owner'] == {'name': 'x'}
        assert fetcher.call_count == 0


class TestOneToMany:
    """Test one-to-many reconciliation."""

    async def test_baseline_merged_with_updates_and_deletes(self, make_engine, fetcher):
        engine = make_engine(pk=42)
        result = await engine.update_values({
            'id': 42,
            'comments': {'create': [], 'update': [{'id': 2, 'title': 'new'}], 'delete': [3]},
        })

        assert result['comments'] == [
            {'id': 1, 'title': 'first'},
            {'id': 2, 'title': 'new'},
        ]
        assert fetcher.field_calls == [('articles', 42, 'comments')]
        assert fetcher.many_calls == [('comments', [1, 2])]

    async def test_creates_appended_after_fetched(self, make_engine, fetcher):
        engine = make_engine(pk=42)
        result = await engine.update_values({
            'comments': {'create': [{'title': 'draft'}], 'update': [{'id': 4}], 'delete': [1, 2, 3]},
        })

        assert result['comments'] == [{'id': 4, 'title': 'fourth'}, {'title': 'draft'}]

    async def test_pk_taken_from_record(self, make_engine, fetcher):
        engine = make_engine()
        await engine.update_values({'id': 42, 'comments': [1, 2, 3]})
        assert fetcher.field_calls == [('articles', 42, 'comments')]

    async def test_new_record_skips_baseline(self, make_engine, fetcher):
        engine = make_engine()
        result = await engine.update_values({'comments': {'create': [{'title': 'draft'}]}})

        assert result['comments'] == [{'title': 'draft'}]
        assert fetcher.call_count == 0

    async def test_custom_new_record_sentinel(self, make_engine, fetcher):
        engine = make_engine(pk='new', config=DeepValuesConfig(new_record_sentinel='new'))
        await engine.update_values({'comments': []})
        assert fetcher.field_calls == []

    async def test_baseline_cached_per_field(self, make_engine, fetcher):
        engine = make_engine(pk=42)
        await engine.update_values({'comments': {'update': [{'id': 1, 'title': 'a'}]}})
        result = await engine.update_values({'comments': {'update': [{'id': 1, 'title': 'b'}]}})

        assert result['comments'][-1] == {'id': 1, 'title': 'b'}
        assert len(fetcher.field_calls) == 1
        assert len(fetcher.many_calls) == 1

    async def test_mutation_object_to_list_clears_caches(self, make_engine, fetcher):
        """The form reloading after save invalidates both caches."""
        engine = make_engine(pk=42)
        await engine.update_values({'comments': {'update': [{'id': 2, 'title': 'new'}]}})
        assert fetcher.many_calls == [('comments', [1, 3, 2])]

        fetcher.fields[('articles', 42, 'comments')] = [1, 2]
        result = await engine.update_values({'comments': [1, 2]})

        assert result['comments'] == [{'id': 1, 'title': 'first'}, {'id': 2, 'title': 'second'}]
        assert len(fetcher.field_calls) == 2
        assert fetcher.many_calls[-1] == ('comments', [1, 2])

    async def test_relation_not_in_template_passes_through(self, make_engine, fetcher):
        engine = make_engine(template="{{title}}", pk=42)
        result = await engine.update_values({'title': 'a', 'comments': [1, 2, 3]})

        assert result['comments'] == [1, 2, 3]
        assert fetcher.call_count == 0


class TestRecomputeGate:
    """Test when passes run."""

    async def test_unreferenced_change_skips_pass(self, make_engine, fetcher):
        engine = make_engine()
        first = await engine.update_values({'title': 'a', 'author': 5, 'status': 'draft'})
        calls = fetcher.call_count

        result = await engine.update_values({'title': 'a', 'author': 5, 'status': 'published'})

        assert result is None
        assert engine.resolved.value is first
        assert fetcher.call_count == calls

    async def test_identical_values_are_ignored(self, make_engine, fetcher):
        engine = make_engine()
        record = {'title': 'a', 'author': 5}
        await engine.update_values(record)

        assert await engine.update_values(dict(record)) is None
        assert len(fetcher.many_calls) == 1

    async def test_in_place_mutation_detected(self, make_engine, fetcher):
        engine = make_engine(pk=42)
        record = {'comments': {'update': [], 'delete': []}}
        await engine.update_values(record)

        record['comments']['delete'].append(1)
        result = await engine.update_values(record)

        assert [item['id'] for item in result['comments']] == [2, 3]

    async def test_idempotent_recompute_uses_cache(self, make_engine, fetcher):
        engine = make_engine(pk=42)
        record = {
            'id': 42,
            'title': 'a',
            'author': {'id': 7, 'note': 'x'},
            'comments': {'update': [{'id': 2, 'title': 'new'}], 'delete': [3]},
        }
        first = await engine.on_change(None, record)
        calls = fetcher.call_count

        second = await engine.on_change(record, record)

        assert json.dumps(second, sort_keys=True) == json.dumps(first, sort_keys=True)
        assert fetcher.call_count == calls

    async def test_removed_keys_published_as_none(self, make_engine):
        engine = make_engine()
        await engine.update_values({'title': 'a', 'author': 5, 'status': 'draft'})
        result = await engine.update_values({'title': 'b'})

        assert 'author' in result and result['author'] is None
        assert 'status' in result and result['status'] is None

    async def test_computed_field_changes_do_not_trigger(self, make_engine):
        engine = make_engine(template="{{title}}", computed_field='title')
        await engine.update_values({'title': 'a', 'status': 'draft'})

        assert await engine.update_values({'title': 'b', 'status': 'done'}) is None


class TestFailuresAndConcurrency:
    """Test fetch failures and overlapping passes."""

    async def test_fetch_failure_keeps_previous_state(self, make_engine, fetcher):
        engine = make_engine()
        previous = await engine.update_values({'author': {'id': 5, 'name': 'Edited'}})

        fetcher.error = FetchFailure('authors', 'boom')
        with pytest.raises(FetchFailure):
            await engine.update_values({'author': 7})

        assert engine.resolved.value is previous
        assert engine.caches.items.has_all('authors', [5])
        assert not engine.is_recomputing

    async def test_failed_reset_pass_keeps_caches_until_next_pass(self, make_engine, fetcher):
        """A reset seen by a failed pass still forces the next pass to refetch."""
        engine = make_engine()
        await engine.update_values({'author': {'id': 5, 'name': 'Edited'}})

        fetcher.error = FetchFailure('authors', 'boom')
        with pytest.raises(FetchFailure):
            await engine.update_values({'author': 5})

        assert engine.caches.items.get('authors', 5) == {'id': 5, 'name': 'Ada'}
        assert engine.caches.reset_pending

        fetcher.error = None
        fetcher.items['authors'][5] = {'id': 5, 'name': 'Ada Lovelace'}
        result = await engine.update_values({'author': 5, 'title': 'x'})

        assert result['author'] == {'id': 5, 'name': 'Ada Lovelace'}
        assert len(fetcher.many_calls) == 3
        assert not engine.caches.reset_pending

    async def test_reset_survives_overtaking_pass(self, make_engine, fetcher):
        """A newer pass that starts after a reset was seen does not reuse stale caches."""
        engine = make_engine(pk=42)
        await engine.update_values({'title': 'a0', 'comments': {'update': [{'id': 2, 'title': 'new'}]}})

        # Saved: storage now links 1 and 2 only
        fetcher.fields[('articles', 42, 'comments')] = [1, 2]
        gate = asyncio.Event()
        fetcher.gate = gate

        reloaded = asyncio.create_task(engine.update_values({'title': 'a', 'comments': [1, 2]}))
        while len(fetcher.many_calls) < 2:
            await asyncio.sleep(0)

        fetcher.gate = None
        latest = await engine.update_values({'title': 'b', 'comments': [1, 2]})
        gate.set()

        assert [item['id'] for item in latest['comments']] == [1, 2]
        assert await reloaded is None
        assert engine.resolved.value is latest
        assert engine.caches.fields.get('comments') == [1, 2]
        assert not engine.caches.reset_pending

    async def test_superseded_pass_is_discarded(self, make_engine, fetcher):
        engine = make_engine()
        gate = asyncio.Event()
        fetcher.gate = gate

        slow = asyncio.create_task(engine.on_change(None, {'author': 5}))
        while not fetcher.many_calls:
            await asyncio.sleep(0)
        assert engine.is_recomputing

        fetcher.gate = None
        fast = await engine.on_change(None, {'author': 7})
        gate.set()

        assert await slow is None
        assert engine.resolved.value is fast
        assert fast['author']['id'] == 7
        assert engine.caches.items.has_all('authors', [7])
        assert not engine.caches.items.has_all('authors', [5])
        assert not engine.is_recomputing

"""
Resolved "deep values" for record-editing forms.

Turns the live record of an edit form into a record where relational fields
hold the related entities' data, so display templates can interpolate nested
fields (``{{author.name}}``) while the user edits.

Quick Start:
    >>> from deepvalues import DeepValuesEngine, DirectusItemsClient, RelationStore
    >>>
    >>> client = DirectusItemsClient("https://cms.example.com/", token="...")
    >>> store = RelationStore(await client.fetch_relations())
    >>> engine = DeepValuesEngine(
    ...     fetcher=client,
    ...     relations=lambda: store.for_collection("articles"),
    ...     collection="articles",
    ...     template="{{title}} by {{author.name}}",
    ...     pk=42,
    ... )
    >>> engine.resolved.subscribe(render)
    >>> await engine.update_values(form_values)

Modules:
    - template: placeholder extraction and field matching
    - relations: relation descriptors, store and field classification
    - relation_values: relational value shapes and mutation sets
    - snapshot: serialized record snapshots and diffs
    - relation_cache: field and item caches
    - deep_values: the engine
    - path_lookup: dotted path lookup for renderers
    - client: ItemsFetcher protocol and httpx implementation
    - config: framework configuration
"""

# Template
from deepvalues.template import (
    TemplateFieldMatcher,
    extract_placeholders,
    field_is_referenced,
)

# Relations
from deepvalues.relations import (
    RelationDescriptor,
    RelationMatch,
    RelationStore,
    classify,
)

# Relational values
from deepvalues.relation_values import (
    MutationSet,
    RelationFieldValue,
    Scalar,
    SingleEntity,
    parse_relation_value,
)

# Caches
from deepvalues.relation_cache import FieldCache, ItemCache, RelationCaches

# Engine
from deepvalues.deep_values import DeepValuesEngine, should_recompute
from deepvalues.observable import Observable
from deepvalues.snapshot import RecordSnapshot, changed_fields

# Path lookup
from deepvalues.path_lookup import PathLookup, find_value_by_path, is_string

# Remote access
from deepvalues.client import DirectusItemsClient, ItemsFetcher

# Configuration
from deepvalues.config import DeepValuesConfig, get_config, reset_config, set_config

# Errors
from deepvalues.errors import DeepValuesError, FetchFailure, RelationConfigError

__all__ = [
    # Template
    'TemplateFieldMatcher',
    'extract_placeholders',
    'field_is_referenced',
    # Relations
    'RelationDescriptor',
    'RelationMatch',
    'RelationStore',
    'classify',
    # Relational values
    'MutationSet',
    'RelationFieldValue',
    'Scalar',
    'SingleEntity',
    'parse_relation_value',
    # Caches
    'FieldCache',
    'ItemCache',
    'RelationCaches',
    # Engine
    'DeepValuesEngine',
    'should_recompute',
    'Observable',
    'RecordSnapshot',
    'changed_fields',
    # Path lookup
    'PathLookup',
    'find_value_by_path',
    'is_string',
    # Remote access
    'DirectusItemsClient',
    'ItemsFetcher',
    # Configuration
    'DeepValuesConfig',
    'get_config',
    'set_config',
    'reset_config',
    # Errors
    'DeepValuesError',
    'FetchFailure',
    'RelationConfigError',
]

__version__ = '1.0.0'
__description__ = 'Resolved relational values for record-editing form templates'

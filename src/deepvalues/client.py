"""
Remote items access.

The engine only depends on the ItemsFetcher protocol. DirectusItemsClient
implements it over a Directus-style REST API with httpx:

- ``GET items/{collection}?filter={"<pk field>":{"_in":"1,2"}}`` for entity batches
- ``GET items/{collection}/{pk}?fields={field}`` for single-field reads
- the users collection is served from ``users`` instead of ``items/...``

Responses wrap their payload in ``{"data": ...}``. Transport and HTTP status
errors, and bodies that are not a JSON object, surface as FetchFailure. Retry
policy, if any, belongs to the httpx transport passed in by the caller.
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence
import json
import logging

import httpx

from deepvalues.config import DeepValuesConfig, get_config
from deepvalues.errors import FetchFailure
from deepvalues.relations import RelationDescriptor

logger = logging.getLogger(__name__)


class ItemsFetcher(Protocol):
    """Remote reads the engine needs."""

    async def fetch_many(self, collection: str, ids: Sequence[Any]) -> List[Dict[str, Any]]:
        ...

    async def fetch_field(self, collection: str, pk: Any, field_name: str) -> Any:
        ...


class DirectusItemsClient:
    """Async ItemsFetcher backed by httpx."""

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[DeepValuesConfig] = None,
    ):
        """
        Initialize client.

        Args:
            base_url: API root, e.g. ``"https://cms.example.com/"``
            token: Static bearer token, if the API needs one
            http_client: Preconfigured client (tests pass one with a mock transport).
                         When given, base_url and token are ignored and the caller owns it.
            config: Overrides the process default configuration
        """
        self.config = config or get_config()
        self._owns_client = http_client is None
        if http_client is None:
            headers = {'Authorization': f'Bearer {token}'} if token else None
            http_client = httpx.AsyncClient(
                base_url=base_url,
                headers=headers,
                timeout=self.config.request_timeout,
            )
        self._http = http_client

    async def __aenter__(self) -> 'DirectusItemsClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def collection_path(self, collection: str) -> str:
        if collection == self.config.users_collection:
            return 'users'
        return f'items/{collection}'

    async def _get(self, collection: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._http.get(path, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Request to {path} failed: {e}")
            raise FetchFailure(collection, str(e), e) from e
        except ValueError as e:
            logger.error(f"Response from {path} is not JSON: {e}")
            raise FetchFailure(collection, f"invalid JSON body: {e}", e) from e

        if not isinstance(payload, Mapping):
            logger.error(f"Response from {path} is not an object: {type(payload).__name__}")
            raise FetchFailure(collection, f"expected a JSON object, got {type(payload).__name__}")
        return payload.get('data')

    async def fetch_many(self, collection: str, ids: Sequence[Any]) -> List[Dict[str, Any]]:
        """Fetch entities of collection whose primary key is in ids."""
        id_filter = {
            self.config.primary_key_field: {'_in': ','.join(str(item_id) for item_id in ids)},
        }
        data = await self._get(
            collection,
            self.collection_path(collection),
            params={'filter': json.dumps(id_filter)},
        )
        logger.debug(f"Fetched {len(data or [])} items from {collection}")
        return list(data or [])

    async def fetch_field(self, collection: str, pk: Any, field_name: str) -> Any:
        """Read one field of one record."""
        data = await self._get(
            collection,
            f'{self.collection_path(collection)}/{pk}',
            params={'fields': field_name},
        )
        return (data or {}).get(field_name)

    async def fetch_relations(self) -> List[RelationDescriptor]:
        """Load all relation descriptors."""
        data = await self._get('relations', 'relations')
        return [RelationDescriptor.from_dict(item) for item in data or []]

    async def fetch_current_user(self) -> Optional[Dict[str, Any]]:
        return await self._get(self.config.users_collection, 'users/me')

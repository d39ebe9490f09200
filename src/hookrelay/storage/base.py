"""Base storage class and helpers.

Contains initialization, collection management, and the low-level Qdrant
calls shared by the endpoint and delivery mixins.
"""

from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from hookrelay.config import settings

from .retry import storage_operation

ModelT = TypeVar("ModelT", bound=BaseModel)

# Collection suffixes by record kind
COLLECTION_NAMES = {
    "endpoints": "endpoints",
    "deliveries": "deliveries",
}

# Records are looked up by payload filters only. Qdrant still requires a
# vector per point, so every point carries the same one-dimensional vector.
PLACEHOLDER_VECTOR = [1.0]

# Numeric shadows of datetime fields, used for range filters
SHADOW_FIELDS = ("created_ts", "next_retry_ts", "deleted")

# Payload indexes per collection
_INDEXES: dict[str, list[tuple[str, models.PayloadSchemaType]]] = {
    "endpoints": [
        ("owner_id", models.PayloadSchemaType.KEYWORD),
        ("status", models.PayloadSchemaType.KEYWORD),
        ("events", models.PayloadSchemaType.KEYWORD),
        ("deleted", models.PayloadSchemaType.BOOL),
        ("consecutive_failures", models.PayloadSchemaType.INTEGER),
    ],
    "deliveries": [
        ("endpoint_id", models.PayloadSchemaType.KEYWORD),
        ("owner_id", models.PayloadSchemaType.KEYWORD),
        ("event", models.PayloadSchemaType.KEYWORD),
        ("status", models.PayloadSchemaType.KEYWORD),
        ("next_retry_ts", models.PayloadSchemaType.FLOAT),
        ("created_ts", models.PayloadSchemaType.FLOAT),
    ],
}


def to_timestamp(value: datetime | None) -> float | None:
    """Convert an aware datetime to epoch seconds for range filters."""
    return value.timestamp() if value is not None else None


class StorageBase:
    """Base class for hookrelay storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Point ID conversion
    - Payload serialization/deserialization
    - Retried low-level Qdrant calls
    - In-process locks for read-modify-write sequences
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        max_scroll_limit: int | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            max_scroll_limit: Cap on records fetched by one listing.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._max_scroll_limit = max_scroll_limit or settings.storage_max_scroll_limit
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False
        self._claim_lock = asyncio.Lock()
        self._endpoint_locks: dict[str, asyncio.Lock] = {}

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    @property
    def is_initialized(self) -> bool:
        return self._client is not None and self._collections_initialized

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist."""
        self._client = AsyncQdrantClient(
            url=self._url,
            api_key=self._api_key,
        )
        await self._ensure_collections()
        self._collections_initialized = True

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    def _collection_name(self, kind: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(kind, kind)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a record ID to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    def _endpoint_lock(self, endpoint_id: str) -> asyncio.Lock:
        """Lock guarding read-modify-write of one endpoint."""
        lock = self._endpoint_locks.get(endpoint_id)
        if lock is None:
            lock = asyncio.Lock()
            self._endpoint_locks[endpoint_id] = lock
        return lock

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist with proper schemas."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            collection_name = self._collection_name(kind)
            if collection_name in existing:
                continue
            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            await self._create_indexes(kind, collection_name)

    async def _create_indexes(self, kind: str, collection_name: str) -> None:
        """Create payload indexes for efficient filtering."""
        for field_name, schema in _INDEXES.get(kind, []):
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=schema,
            )

    def _model_to_payload(self, record: BaseModel) -> dict[str, Any]:
        """Convert a model to a Qdrant payload with numeric shadow fields."""
        data = record.model_dump(mode="json")

        created_at = getattr(record, "created_at", None)
        data["created_ts"] = to_timestamp(created_at)

        if hasattr(record, "next_retry_at"):
            # Absent rather than null, so range filters skip unscheduled records
            next_retry_ts = to_timestamp(record.next_retry_at)
            if next_retry_ts is not None:
                data["next_retry_ts"] = next_retry_ts

        if hasattr(record, "deleted_at"):
            data["deleted"] = record.deleted_at is not None

        return data

    def _payload_to_model(self, payload: dict[str, Any], model_class: type[ModelT]) -> ModelT:
        """Convert Qdrant payload back to a model."""
        payload = dict(payload)
        for field in SHADOW_FIELDS:
            payload.pop(field, None)
        return model_class.model_validate(payload)

    @storage_operation
    async def _upsert(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._key_to_point_id(record_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=payload,
                )
            ],
        )

    @storage_operation
    async def _retrieve(self, kind: str, record_id: str) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._key_to_point_id(record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return dict(results[0].payload)

    @storage_operation
    async def _set_payload(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        """Overwrite only the given payload keys of one point."""
        await self.client.set_payload(
            collection_name=self._collection_name(kind),
            payload=payload,
            points=[self._key_to_point_id(record_id)],
        )

    @storage_operation
    async def _count(self, kind: str, count_filter: models.Filter) -> int:
        result = await self.client.count(
            collection_name=self._collection_name(kind),
            count_filter=count_filter,
            exact=True,
        )
        return int(result.count)

    @storage_operation
    async def _scroll_all(
        self,
        kind: str,
        scroll_filter: models.Filter,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch payloads of every point matching a filter, page by page.

        Args:
            kind: Collection kind.
            scroll_filter: Qdrant filter.
            limit: Stop after this many records. Defaults to max_scroll_limit.
        """
        cap = min(limit or self._max_scroll_limit, self._max_scroll_limit)
        page_size = min(cap, 256)
        payloads: list[dict[str, Any]] = []
        offset: Any = None

        while len(payloads) < cap:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(kind),
                scroll_filter=scroll_filter,
                limit=min(page_size, cap - len(payloads)),
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            payloads.extend(dict(p.payload) for p in points if p.payload is not None)
            if offset is None or not points:
                break

        return payloads

    @storage_operation
    async def _scroll_ordered(
        self,
        kind: str,
        scroll_filter: models.Filter,
        order_key: str,
        direction: models.Direction,
        limit: int,
    ) -> list[dict[str, Any]]:
        """Fetch the first ``limit`` matching payloads ordered by a numeric field.

        Ordering is done by Qdrant over the whole match set, so the result is
        exact however many points match. The order key needs a range index.
        """
        points, _ = await self.client.scroll(
            collection_name=self._collection_name(kind),
            scroll_filter=scroll_filter,
            limit=limit,
            order_by=models.OrderBy(key=order_key, direction=direction),
            with_payload=True,
            with_vectors=False,
        )
        return [dict(p.payload) for p in points if p.payload is not None]

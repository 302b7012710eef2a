"""Base storage class and helpers.

Contains initialization, collection management, and shared utilities.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from qdrant_client import AsyncQdrantClient, models

from hookrelay.config import settings
from hookrelay.exceptions import HookRelayError, StorageError

from .retry import qdrant_retry

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from hookrelay.models import WebhookConfig, WebhookDelivery

RecordT = TypeVar("RecordT", bound=BaseModel)

# Collection names by record type
COLLECTION_NAMES = {
    "webhooks": "webhooks",
    "webhook_deliveries": "webhook_deliveries",
}

# Records are looked up by payload filters only; every point carries this
# one-dimensional placeholder vector.
VECTOR_DIM = 1
PLACEHOLDER_VECTOR = [0.0] * VECTOR_DIM

# Payload fields indexed per collection
_INDEXES: dict[str, list[tuple[str, models.PayloadSchemaType]]] = {
    "webhooks": [
        ("id", models.PayloadSchemaType.KEYWORD),
        ("company_id", models.PayloadSchemaType.KEYWORD),
        ("is_active", models.PayloadSchemaType.BOOL),
    ],
    "webhook_deliveries": [
        ("webhook_id", models.PayloadSchemaType.KEYWORD),
        ("company_id", models.PayloadSchemaType.KEYWORD),
        ("created_at", models.PayloadSchemaType.DATETIME),
    ],
}


class WebhookStore(Protocol):
    """Persistence operations the delivery engine depends on."""

    async def list_webhooks(
        self, company_id: str, active_only: bool = False
    ) -> list[WebhookConfig]: ...

    async def get_webhook(self, webhook_id: str) -> WebhookConfig | None: ...

    async def log_delivery(self, delivery: WebhookDelivery) -> str: ...

    async def get_delivery_logs(
        self, webhook_id: str, limit: int = 50
    ) -> list[WebhookDelivery]: ...


class StorageBase:
    """Base class for hookrelay storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Key building and point ID conversion
    - Payload serialization/deserialization
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
            max_scroll_limit: Largest scroll page. Defaults to settings.storage_max_scroll_limit.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._max_scroll_limit = max_scroll_limit or settings.storage_max_scroll_limit
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

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

    def _collection_name(self, record_type: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(record_type, record_type)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _build_key(record_id: str, company_id: str) -> str:
        """Build a tenancy key: {company_id}/{record_id}."""
        return f"{company_id}/{record_id}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a storage key to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for record_type in COLLECTION_NAMES:
            collection_name = self._collection_name(record_type)
            if collection_name in existing:
                continue

            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=VECTOR_DIM,
                    distance=models.Distance.DOT,
                ),
            )
            await self._create_indexes(record_type)

    async def _create_indexes(self, record_type: str) -> None:
        """Create payload indexes for efficient filtering."""
        for field_name, schema in _INDEXES.get(record_type, []):
            await self.client.create_payload_index(
                collection_name=self._collection_name(record_type),
                field_name=field_name,
                field_schema=schema,
            )

    @staticmethod
    def _record_to_payload(record: BaseModel) -> dict[str, Any]:
        """Convert a record model to a Qdrant payload."""
        return record.model_dump(mode="json")

    @staticmethod
    def _payload_to_record(payload: dict[str, Any], record_class: type[RecordT]) -> RecordT:
        """Convert a Qdrant payload back to a record model."""
        return record_class.model_validate(payload)

    def _decode(self, payloads: list[dict[str, Any]], record_class: type[RecordT]) -> list[RecordT]:
        """Convert payloads to records, skipping any that no longer validate."""
        records: list[RecordT] = []
        for payload in payloads:
            try:
                records.append(self._payload_to_record(payload, record_class))
            except PydanticValidationError as e:
                logger.warning(
                    "Skipping undecodable %s %s: %s",
                    record_class.__name__,
                    payload.get("id"),
                    e,
                )
        return records

    @qdrant_retry
    async def _upsert(self, record_type: str, key: str, payload: dict[str, Any]) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(record_type),
            points=[
                models.PointStruct(
                    id=self._key_to_point_id(key),
                    vector=PLACEHOLDER_VECTOR,
                    payload=payload,
                )
            ],
        )

    @qdrant_retry
    async def _scroll(
        self,
        record_type: str,
        conditions: list[models.FieldCondition],
        limit: int,
        order_by: models.OrderBy | None = None,
    ) -> list[dict[str, Any]]:
        """Return payloads of points matching all conditions, optionally ordered."""
        results, _ = await self.client.scroll(
            collection_name=self._collection_name(record_type),
            scroll_filter=models.Filter(must=conditions),
            limit=limit,
            order_by=order_by,
            with_payload=True,
        )
        return [r.payload for r in results if r.payload is not None]

    @staticmethod
    @contextmanager
    def _storage_errors(operation: str) -> Iterator[None]:
        """Re-raise backend failures as StorageError."""
        try:
            yield
        except HookRelayError:
            raise
        except Exception as e:
            logger.error("Storage operation %s failed: %s", operation, e)
            raise StorageError(f"{operation} failed: {e}") from e


def match(key: str, value: Any) -> models.FieldCondition:
    """Exact-match payload condition."""
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))

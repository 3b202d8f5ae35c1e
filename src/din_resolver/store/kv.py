"""Key-value stores backing the registry cache and the run properties.

Two implementations share the KeyValueStore protocol:
- MongoKeyValueStore: one MongoDB document per key, expiry enforced on read
  and by a TTL index
- InMemoryKeyValueStore: process-local dict, used by tests and dry runs

Every store advertises ``max_value_size``, the largest string value a single
entry may hold. ChunkedCache sizes its fragments from it.
"""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection

logger = logging.getLogger(__name__)

# Default MongoDB connection settings
DEFAULT_MONGODB_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "din_resolver"

# BSON documents are capped at 16 MiB
MONGO_MAX_VALUE_SIZE = 16 * 1024 * 1024

# Per-value ceiling of typical hosted script caches
DEFAULT_MEMORY_MAX_VALUE_SIZE = 100_000


class KeyValueStore(Protocol):
    """A string key-value store with optional per-entry expiry."""

    max_value_size: int

    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str, ttl_seconds: float | None = None) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store with expiry measured on an injectable clock."""

    def __init__(
        self,
        max_value_size: int = DEFAULT_MEMORY_MAX_VALUE_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        self.max_value_size = max_value_size
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    def get(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    def put(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        if len(value) > self.max_value_size:
            raise ValueError(f"Value for '{key}' is {len(value)} chars, limit is {self.max_value_size}")
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        """Keys currently held, including any not yet evicted after expiry."""
        return list(self._data)


class MongoKeyValueStore:
    """MongoDB-backed store.

    Documents look like ``{"_id": key, "value": str, "expires_at": datetime | None}``.
    A TTL index on ``expires_at`` lets MongoDB evict stale entries, but the
    monitor runs only periodically, so ``get`` also checks expiry itself.

    Example:
        >>> store = MongoKeyValueStore(collection_name="cache")
        >>> store.put("greeting", "hello", ttl_seconds=60)
        >>> store.get("greeting")
        'hello'
    """

    def __init__(
        self,
        mongodb_uri: str = DEFAULT_MONGODB_URI,
        database_name: str = DEFAULT_DATABASE_NAME,
        collection_name: str = "cache",
        max_value_size: int = MONGO_MAX_VALUE_SIZE,
    ):
        """Initialize the store. The connection is opened lazily.

        Args:
            mongodb_uri: MongoDB connection URI
            database_name: Database holding the collection
            collection_name: Collection holding the key documents
            max_value_size: Largest value accepted per key
        """
        self.mongodb_uri = mongodb_uri
        self.database_name = database_name
        self.collection_name = collection_name
        self.max_value_size = max_value_size
        self._client: MongoClient[dict[str, Any]] | None = None
        self._collection: Collection[dict[str, Any]] | None = None

    def _get_collection(self) -> Collection[dict[str, Any]]:
        """Get or create the collection, ensuring the TTL index exists."""
        if self._collection is None:
            self._client = MongoClient(self.mongodb_uri, tz_aware=True)
            collection = self._client[self.database_name][self.collection_name]
            collection.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
            self._collection = collection
        return self._collection

    def get(self, key: str) -> str | None:
        doc = self._get_collection().find_one({"_id": key})
        if doc is None:
            return None
        expires_at = doc.get("expires_at")
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=UTC)
            if expires_at <= datetime.now(UTC):
                return None
        value: str | None = doc.get("value")
        return value

    def put(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        if len(value) > self.max_value_size:
            raise ValueError(f"Value for '{key}' is {len(value)} chars, limit is {self.max_value_size}")
        expires_at = datetime.now(UTC) + timedelta(seconds=ttl_seconds) if ttl_seconds is not None else None
        self._get_collection().replace_one(
            {"_id": key},
            {"_id": key, "value": value, "expires_at": expires_at},
            upsert=True,
        )

    def delete(self, key: str) -> None:
        self._get_collection().delete_one({"_id": key})

    def close(self) -> None:
        """Close the MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._collection = None

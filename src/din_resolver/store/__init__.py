"""Storage layer for din-resolver.

Provides key-value stores (MongoDB or in-memory) and the chunked TTL cache
that holds the assembled registry across size-bounded entries.
"""

from din_resolver.store.chunked_cache import CacheHit, CacheMiss, ChunkedCache
from din_resolver.store.kv import InMemoryKeyValueStore, KeyValueStore, MongoKeyValueStore

__all__ = [
    "CacheHit",
    "CacheMiss",
    "ChunkedCache",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "MongoKeyValueStore",
]

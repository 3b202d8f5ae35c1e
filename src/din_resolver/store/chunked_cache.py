"""Chunked, TTL-based cache for payloads larger than one store entry.

A payload is serialized to ASCII-only JSON and split into fragments that fit
comfortably under the backing store's per-value ceiling. For a blob named
``registry`` the keys are::

    registry:timestamp   creation time (epoch seconds)
    registry:count       number of fragments
    registry:chunk:0 .. registry:chunk:N-1

Readers trust a blob only when the timestamp is fresh and every fragment is
present. A partial blob is reported as a miss, never returned truncated.
"""

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pymongo.errors import PyMongoError

from din_resolver.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

# Fraction of the store's per-value ceiling a fragment may use
CHUNK_SIZE_RATIO = 0.9


@dataclass
class CacheHit:
    """A complete, fresh blob.

    Attributes:
        value: The deserialized payload
        created_at: Epoch seconds when the blob was stored
    """

    value: Any
    created_at: float


@dataclass
class CacheMiss:
    """No usable blob; ``reason`` says why (absent, expired, incomplete, corrupt)."""

    reason: str


def _timestamp_key(name: str) -> str:
    return f"{name}:timestamp"


def _count_key(name: str) -> str:
    return f"{name}:count"


def _chunk_key(name: str, index: int) -> str:
    return f"{name}:chunk:{index}"


def split_into_chunks(text: str, chunk_size: int) -> list[str]:
    """Split text into consecutive pieces of at most ``chunk_size`` characters.

    An empty string yields a single empty chunk so the blob still has a count.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if not text:
        return [""]
    return [text[i : i + chunk_size] for i in range(0, len(text), chunk_size)]


class ChunkedCache:
    """Store and load oversized payloads across size-bounded store entries.

    Example:
        >>> cache = ChunkedCache(InMemoryKeyValueStore(max_value_size=1000))
        >>> cache.store("registry", {"entries": []}, max_age=3600)
        True
        >>> cache.load("registry", max_age=3600)
        CacheHit(value={'entries': []}, created_at=...)
    """

    def __init__(self, store: KeyValueStore, clock: Callable[[], float] = time.time):
        """Initialize the cache.

        Args:
            store: Backing key-value store
            clock: Source of epoch seconds, injectable for tests
        """
        self.store_backend = store
        self._clock = clock
        self.chunk_size = int(store.max_value_size * CHUNK_SIZE_RATIO)

    def store(self, name: str, payload: Any, max_age: float) -> bool:
        """Serialize ``payload`` and write it as a chunked blob.

        The old timestamp is removed first and the new one written last, so a
        reader never pairs a fresh timestamp with fragments from another write.

        Args:
            name: Logical blob name
            payload: JSON-serializable value
            max_age: Seconds every written entry stays valid

        Returns:
            True if every entry was written, False otherwise
        """
        try:
            # ensure_ascii keeps character count equal to byte count
            serialized = json.dumps(payload, ensure_ascii=True, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            logger.error(f"Could not serialize cache payload '{name}': {e}")
            return False

        chunks = split_into_chunks(serialized, self.chunk_size)
        try:
            self.store_backend.delete(_timestamp_key(name))
            for index, chunk in enumerate(chunks):
                self.store_backend.put(_chunk_key(name, index), chunk, max_age)
            self.store_backend.put(_count_key(name), str(len(chunks)), max_age)
            self.store_backend.put(_timestamp_key(name), repr(self._clock()), max_age)
        except (PyMongoError, ValueError) as e:
            logger.error(f"Failed to write cache blob '{name}': {e}")
            return False

        logger.info(f"Cached '{name}': {len(serialized)} chars in {len(chunks)} chunk(s)")
        return True

    def load(self, name: str, max_age: float) -> CacheHit | CacheMiss:
        """Read a blob if it is fresh and complete.

        Args:
            name: Logical blob name
            max_age: Maximum age in seconds for the blob to count as fresh

        Returns:
            CacheHit with the deserialized payload, or CacheMiss
        """
        try:
            raw_timestamp = self.store_backend.get(_timestamp_key(name))
            if raw_timestamp is None:
                return CacheMiss("absent")
            try:
                created_at = float(raw_timestamp)
            except ValueError:
                return CacheMiss("corrupt timestamp")
            if self._clock() - created_at > max_age:
                return CacheMiss("expired")

            raw_count = self.store_backend.get(_count_key(name))
            if raw_count is None or not raw_count.isdigit():
                return CacheMiss("missing fragment count")

            fragments: list[str] = []
            for index in range(int(raw_count)):
                fragment = self.store_backend.get(_chunk_key(name, index))
                if fragment is None:
                    return CacheMiss(f"missing fragment {index}")
                fragments.append(fragment)
        except PyMongoError as e:
            logger.warning(f"Cache read for '{name}' failed: {e}")
            return CacheMiss("store error")

        try:
            value = json.loads("".join(fragments))
        except ValueError as e:
            logger.warning(f"Cache blob '{name}' is corrupt: {e}")
            return CacheMiss("corrupt payload")
        return CacheHit(value=value, created_at=created_at)

    def clear(self, name: str) -> int:
        """Delete every entry of a blob.

        Returns:
            Number of fragments removed
        """
        raw_count = self.store_backend.get(_count_key(name))
        count = int(raw_count) if raw_count and raw_count.isdigit() else 0
        self.store_backend.delete(_timestamp_key(name))
        self.store_backend.delete(_count_key(name))
        for index in range(count):
            self.store_backend.delete(_chunk_key(name, index))
        logger.info(f"Cleared cache blob '{name}' ({count} chunk(s))")
        return count

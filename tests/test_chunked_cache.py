"""Tests for the chunked TTL cache."""

from unittest.mock import MagicMock

import pytest
from pymongo.errors import ConnectionFailure

from din_resolver.store.chunked_cache import CacheHit, CacheMiss, ChunkedCache, split_into_chunks
from din_resolver.store.kv import InMemoryKeyValueStore


def big_payload() -> dict:
    return {"entries": [{"id": f"{i:08d}", "name": "Ibuprofen é"} for i in range(20)]}


class TestSplitIntoChunks:
    """Tests for split_into_chunks."""

    def test_exact_pieces(self) -> None:
        assert split_into_chunks("abcdefg", 3) == ["abc", "def", "g"]

    def test_empty_text(self) -> None:
        assert split_into_chunks("", 10) == [""]

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            split_into_chunks("abc", 0)


class TestChunkedCache:
    """Tests for ChunkedCache store/load/clear."""

    def test_chunk_size_from_store(self, memory_store: InMemoryKeyValueStore) -> None:
        assert ChunkedCache(memory_store).chunk_size == 90

    def test_round_trip_across_chunks(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        payload = big_payload()

        assert cache.store("registry", payload, max_age=3600) is True
        count = int(memory_store.get("registry:count"))
        assert count > 1

        result = cache.load("registry", max_age=3600)
        assert isinstance(result, CacheHit)
        assert result.value == payload
        assert result.created_at == clock()

    def test_fragments_are_ascii(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        cache.store("registry", big_payload(), max_age=3600)
        chunk = memory_store.get("registry:chunk:0")
        assert chunk is not None
        assert chunk.isascii()

    def test_absent(self, memory_store: InMemoryKeyValueStore) -> None:
        result = ChunkedCache(memory_store).load("registry", max_age=3600)
        assert result == CacheMiss("absent")

    def test_missing_fragment_is_miss(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        cache.store("registry", big_payload(), max_age=3600)
        memory_store.delete("registry:chunk:1")

        result = cache.load("registry", max_age=3600)
        assert result == CacheMiss("missing fragment 1")

    def test_missing_count_is_miss(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        cache.store("registry", big_payload(), max_age=3600)
        memory_store.delete("registry:count")

        assert cache.load("registry", max_age=3600) == CacheMiss("missing fragment count")

    def test_stale_timestamp_is_miss(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        cache.store("registry", big_payload(), max_age=3600)
        clock.advance(120)

        assert cache.load("registry", max_age=60) == CacheMiss("expired")

    def test_entries_expire_in_store(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        cache.store("registry", big_payload(), max_age=60)
        clock.advance(61)

        assert isinstance(cache.load("registry", max_age=60), CacheMiss)

    def test_corrupt_timestamp(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        cache.store("registry", {"a": 1}, max_age=3600)
        memory_store.put("registry:timestamp", "yesterday")

        assert cache.load("registry", max_age=3600) == CacheMiss("corrupt timestamp")

    def test_corrupt_payload(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        cache.store("registry", {"a": 1}, max_age=3600)
        memory_store.put("registry:chunk:0", "{not json")

        assert cache.load("registry", max_age=3600) == CacheMiss("corrupt payload")

    def test_rewrite_replaces_blob(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        cache.store("registry", big_payload(), max_age=3600)
        clock.advance(10)
        cache.store("registry", {"entries": []}, max_age=3600)

        result = cache.load("registry", max_age=3600)
        assert isinstance(result, CacheHit)
        assert result.value == {"entries": []}

    def test_unserializable_payload(self, memory_store: InMemoryKeyValueStore) -> None:
        cache = ChunkedCache(memory_store)
        assert cache.store("registry", {"when": object()}, max_age=3600) is False
        assert memory_store.keys() == []

    def test_store_rejects_write(self, clock) -> None:
        store = MagicMock()
        store.max_value_size = 100
        store.put.side_effect = ValueError("too large")
        cache = ChunkedCache(store, clock=clock)

        assert cache.store("registry", {"a": 1}, max_age=3600) is False

    def test_store_read_error_is_miss(self) -> None:
        store = MagicMock()
        store.max_value_size = 100
        store.get.side_effect = ConnectionFailure("down")
        cache = ChunkedCache(store)

        assert cache.load("registry", max_age=3600) == CacheMiss("store error")

    def test_clear(self, memory_store: InMemoryKeyValueStore, clock) -> None:
        cache = ChunkedCache(memory_store, clock=clock)
        cache.store("registry", big_payload(), max_age=3600)
        count = int(memory_store.get("registry:count"))

        assert cache.clear("registry") == count
        assert memory_store.keys() == []
        assert cache.load("registry", max_age=3600) == CacheMiss("absent")

    def test_clear_nothing(self, memory_store: InMemoryKeyValueStore) -> None:
        assert ChunkedCache(memory_store).clear("registry") == 0

"""Pytest configuration for din-resolver tests.

This file is automatically loaded by pytest and sets up test fixtures
and configuration that are shared across all test modules.
"""

import pytest
from dotenv import load_dotenv

from din_resolver.store.kv import InMemoryKeyValueStore

# Load .env file so integration tests can access lookup URLs
# This runs before any tests are collected
load_dotenv()


class FakeClock:
    """Clock returning a controllable time, advanced by tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryKeyValueStore:
    """Small in-memory store so payloads need several chunks."""
    return InMemoryKeyValueStore(max_value_size=100, clock=clock)


@pytest.fixture
def properties() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()

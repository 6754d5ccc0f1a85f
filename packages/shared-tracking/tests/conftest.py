"""Pytest fixtures for shared-tracking tests."""

from __future__ import annotations

from typing import Any

import pytest
from windowman.tracking.config import TrackingConfig
from windowman.tracking.emitters import Tracker
from windowman.tracking.exceptions import SinkError, StorageUnavailableError
from windowman.tracking.guard import DedupGuard
from windowman.tracking.schema import UserIdentity
from windowman.tracking.sink import DataLayerSink, EventSink
from windowman.tracking.storage import InMemoryStore, KeyValueStore

TEST_LEAD_ID = "test-lead-abc"


class UnavailableStore(KeyValueStore):
    """Store that fails every operation, like storage in private browsing."""

    def get(self, key: str) -> str | None:
        raise StorageUnavailableError("storage disabled")

    def set(self, key: str, value: str) -> None:
        raise StorageUnavailableError("storage disabled")

    def delete(self, key: str) -> None:
        raise StorageUnavailableError("storage disabled")


class FailingSink(EventSink):
    """Sink that rejects every record."""

    def __init__(self) -> None:
        self.attempts: list[dict[str, Any]] = []

    def push(self, record: dict[str, Any]) -> None:
        self.attempts.append(record)
        raise SinkError("collector down")


@pytest.fixture
def unavailable_store() -> UnavailableStore:
    return UnavailableStore()


@pytest.fixture
def failing_sink() -> FailingSink:
    return FailingSink()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sink() -> DataLayerSink:
    return DataLayerSink()


@pytest.fixture
def guard(store: InMemoryStore) -> DedupGuard:
    return DedupGuard(store)


@pytest.fixture
def tracker(sink: DataLayerSink, guard: DedupGuard) -> Tracker:
    """Tracker with an in-memory sink and a fixed clock."""
    return Tracker(
        sink=sink,
        guard=guard,
        config=TrackingConfig(debug=True),
        clock=lambda: "1700000000000",
    )


@pytest.fixture
def identity() -> UserIdentity:
    return UserIdentity(
        lead_id=TEST_LEAD_ID,
        email="user@example.com",
        phone="+15551234567",
    )

"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from asher.adapters.db.store import EncryptedStore
from asher.services.keys.coordinator import KeyCoordinator

TEST_KEY = "secret1"


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "Asher" / "transactions.db"


@pytest.fixture
def keys() -> KeyCoordinator:
    """Coordinator with the test key already set and no prompt channels."""
    coordinator = KeyCoordinator()
    coordinator.set_key(TEST_KEY)
    return coordinator


@pytest.fixture
def make_store(store_path: Path) -> Iterator[Callable[..., EncryptedStore]]:
    """Factory for stores on the shared temp path; all are closed on teardown."""
    created: list[EncryptedStore] = []

    def factory(
        key: str | None = TEST_KEY, coordinator: KeyCoordinator | None = None
    ) -> EncryptedStore:
        if coordinator is None:
            coordinator = KeyCoordinator()
            if key is not None:
                coordinator.set_key(key)
        store = EncryptedStore(store_path, coordinator)
        created.append(store)
        return store

    yield factory

    for store in created:
        store.close()


@pytest.fixture
def store(make_store: Callable[..., EncryptedStore]) -> EncryptedStore:
    """An opened store keyed with TEST_KEY."""
    opened = make_store()
    asyncio.run(opened.open())
    return opened

"""Shared fixtures.

Fixtures use function scope to avoid event loop issues: each test gets a
fresh, initialized store. SQLite stores live in pytest's tmp_path.
"""

from collections.abc import AsyncGenerator

import pytest

from reviewflow.config import Config, FeatureFlags, FanoutConfig, LoggingConfig
from reviewflow.core.document_store import InMemoryDocumentStore, SQLiteDocumentStore
from reviewflow.core.document_store.base import DocumentStore


@pytest.fixture
async def memory_store() -> AsyncGenerator[InMemoryDocumentStore, None]:
    """Fresh in-memory document store."""
    store = InMemoryDocumentStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def sqlite_store(tmp_path) -> AsyncGenerator[SQLiteDocumentStore, None]:
    """Fresh SQLite document store in a temporary directory."""
    store = SQLiteDocumentStore(db_path=str(tmp_path / "reviewflow.db"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path) -> AsyncGenerator[DocumentStore, None]:
    """Each backend in turn, for contract tests."""
    if request.param == "memory":
        backend: DocumentStore = InMemoryDocumentStore()
    else:
        backend = SQLiteDocumentStore(db_path=str(tmp_path / "contract.db"))
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
def config() -> Config:
    """Client-mode config with fast fan-out settings and no file logging."""
    return Config(
        flags=FeatureFlags(),
        fanout=FanoutConfig(client_timeout=5.0, retry_delay=0.0, poll_interval=0.05),
        logging=LoggingConfig(log_to_file=False),
    )


@pytest.fixture
def server_config(config) -> Config:
    """Same as ``config`` but with server-mode fan-out."""
    return config.model_copy(
        update={"flags": config.flags.model_copy(update={"notification_fanout": "server"})}
    )

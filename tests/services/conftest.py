"""Fixtures for service tests.

Fixtures use function scope to avoid event loop issues.
Services are built on the in-memory store unless a test asks for the
parametrized ``store`` fixture from the root conftest.
"""

import asyncio

import pytest

from reviewflow.core.document_store import InMemoryDocumentStore
from reviewflow.services import (
    AuditLog,
    DiscussionDirectory,
    NotificationFanout,
    NotificationInbox,
    OutboxRelay,
    ProposalStore,
    WatchlistIndex,
)
from reviewflow.utils.exceptions import TransientStorageError


class FaultyDocumentStore(InMemoryDocumentStore):
    """
    In-memory store whose notification writes can fail or hang per recipient.

    ``failures[user]`` is the number of writes to fail before succeeding
    (-1 fails forever); users in ``stalled`` never complete their write.
    """

    def __init__(self):
        super().__init__()
        self.failures: dict[str, int] = {}
        self.stalled: set[str] = set()
        self.create_attempts: dict[str, int] = {}

    async def create(self, path, doc):
        segments = path.strip("/").split("/")
        user = segments[1] if segments[0] == "notifications" else None
        if user is not None:
            self.create_attempts[user] = self.create_attempts.get(user, 0) + 1
            if user in self.stalled:
                await asyncio.sleep(3600)
            remaining = self.failures.get(user, 0)
            if remaining:
                if remaining > 0:
                    self.failures[user] = remaining - 1
                raise TransientStorageError(f"injected write failure for {user}")
        return await super().create(path, doc)


class InterleavingDocumentStore(InMemoryDocumentStore):
    """Yields to the event loop after every transactional read."""

    async def _read_versioned(self, path):
        result = await super()._read_versioned(path)
        await asyncio.sleep(0)
        return result


@pytest.fixture
def faulty_store() -> FaultyDocumentStore:
    return FaultyDocumentStore()


@pytest.fixture
def interleaving_store() -> InterleavingDocumentStore:
    return InterleavingDocumentStore()


@pytest.fixture
def audit_log(memory_store) -> AuditLog:
    return AuditLog(memory_store)


@pytest.fixture
def proposal_store(memory_store, audit_log) -> ProposalStore:
    return ProposalStore(memory_store, audit_log)


@pytest.fixture
def watchlist(memory_store) -> WatchlistIndex:
    return WatchlistIndex(memory_store)


@pytest.fixture
def discussions(memory_store) -> DiscussionDirectory:
    return DiscussionDirectory(memory_store)


@pytest.fixture
def inbox(memory_store) -> NotificationInbox:
    return NotificationInbox(memory_store)


@pytest.fixture
def fanout(memory_store, watchlist, discussions) -> NotificationFanout:
    return NotificationFanout(memory_store, watchlist, discussions=discussions)


@pytest.fixture
def relay(memory_store, fanout) -> OutboxRelay:
    return OutboxRelay(memory_store, fanout)

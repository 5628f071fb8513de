"""
In-memory document store.

Process-local implementation of the DocumentStore contract, used for tests
and single-process deployments.
"""

import asyncio
import copy
import itertools

from reviewflow.core.document_store.base import (
    CommitConflict,
    Document,
    DocumentStore,
    Transaction,
    collection_path,
    document_path,
    split_path,
)


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed document store with optimistic transactions.

    Every write stamps the document with a value from one global sequence,
    so a delete followed by a re-create is still seen as a change.
    """

    def __init__(self, transaction_attempts: int = 5):
        super().__init__(transaction_attempts=transaction_attempts)
        self._docs: dict[str, tuple[int, Document]] = {}
        self._sequence = itertools.count(1)
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Nothing to set up."""
        pass

    async def close(self) -> None:
        """Nothing to release."""
        pass

    async def get(self, path: str) -> Document | None:
        entry = self._docs.get(document_path(path))
        return copy.deepcopy(entry[1]) if entry else None

    async def put(self, path: str, doc: Document) -> None:
        path = document_path(path)
        async with self._lock:
            self._docs[path] = (next(self._sequence), copy.deepcopy(doc))

    async def create(self, path: str, doc: Document) -> bool:
        path = document_path(path)
        async with self._lock:
            if path in self._docs:
                return False
            self._docs[path] = (next(self._sequence), copy.deepcopy(doc))
            return True

    async def delete(self, path: str) -> None:
        path = document_path(path)
        async with self._lock:
            self._docs.pop(path, None)

    async def scan(self, collection: str, limit: int | None = None) -> list[tuple[str, Document]]:
        collection = collection_path(collection)
        depth = len(split_path(collection)) + 1
        prefix = collection + "/"

        results = [
            (path, copy.deepcopy(doc))
            for path, (_, doc) in sorted(self._docs.items())
            if path.startswith(prefix) and len(split_path(path)) == depth
        ]
        return results[:limit] if limit is not None else results

    async def _read_versioned(self, path: str) -> tuple[Document | None, int]:
        entry = self._docs.get(path)
        if entry is None:
            return None, 0
        return copy.deepcopy(entry[1]), entry[0]

    async def _commit(self, transaction: Transaction) -> None:
        async with self._lock:
            for path, seen in transaction.reads.items():
                current = self._docs.get(path)
                if (current[0] if current else 0) != seen:
                    raise CommitConflict(path)

            for path, doc in transaction.writes.items():
                if doc is None:
                    self._docs.pop(path, None)
                else:
                    self._docs[path] = (next(self._sequence), copy.deepcopy(doc))

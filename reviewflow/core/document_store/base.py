"""
Base interface for the transactional key-path document store.

Documents are JSON-like dicts addressed by slash-separated paths that
alternate collection and document ids (``proposals/{id}``,
``watchlists/{user}/items/{key}``). Transactions are optimistic: reads record
the version they saw, commit validates the read set, and the first committer
wins. A losing transaction function is re-run against fresh data.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from reviewflow.utils.exceptions import TransientStorageError, ValidationError
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Document = dict[str, Any]


def split_path(path: str) -> list[str]:
    """Split a store path into its segments."""
    return [segment for segment in path.split("/") if segment]


def document_path(path: str) -> str:
    """
    Validate and normalize a document path (even number of segments).

    Raises:
        ValidationError: If the path does not address a document
    """
    segments = split_path(path)
    if not segments or len(segments) % 2:
        raise ValidationError(f"Not a document path: {path!r}", context={"path": path})
    return "/".join(segments)


def collection_path(path: str) -> str:
    """
    Validate and normalize a collection path (odd number of segments).

    Raises:
        ValidationError: If the path does not address a collection
    """
    segments = split_path(path)
    if not segments or len(segments) % 2 == 0:
        raise ValidationError(f"Not a collection path: {path!r}", context={"path": path})
    return "/".join(segments)


class CommitConflict(Exception):
    """Raised by a backend when a transaction's read set changed before commit."""


class Transaction:
    """
    Buffered read-modify-write unit bound to one store.

    Reads go to the store and remember the version seen; writes are buffered
    and only applied by a successful commit. Reading a path that this
    transaction already wrote returns the buffered value.
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self.reads: dict[str, int] = {}
        self.writes: dict[str, Document | None] = {}

    async def get(self, path: str) -> Document | None:
        path = document_path(path)
        if path in self.writes:
            return self.writes[path]
        doc, version = await self._store._read_versioned(path)
        # Keep the first version seen; later reads must not mask a concurrent change
        self.reads.setdefault(path, version)
        return doc

    def put(self, path: str, doc: Document) -> None:
        self.writes[document_path(path)] = doc

    def delete(self, path: str) -> None:
        self.writes[document_path(path)] = None


class DocumentStore(ABC):
    """Abstract base class for document store implementations."""

    def __init__(self, transaction_attempts: int = 5):
        self.transaction_attempts = transaction_attempts

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the store (create tables/schema)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the store's resources."""
        pass

    # ═══════════════════════════════════════════════════════════
    # DOCUMENT OPERATIONS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def get(self, path: str) -> Document | None:
        """
        Read a document.

        Args:
            path: Document path

        Returns:
            Document dict or None if absent
        """
        pass

    @abstractmethod
    async def put(self, path: str, doc: Document) -> None:
        """
        Write (create or replace) a document.

        Args:
            path: Document path
            doc: Document body
        """
        pass

    @abstractmethod
    async def create(self, path: str, doc: Document) -> bool:
        """
        Insert a document only if the path is free.

        Args:
            path: Document path
            doc: Document body

        Returns:
            True if written, False if a document already existed
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> None:
        """
        Delete a document. Deleting an absent path is a no-op.

        Args:
            path: Document path
        """
        pass

    @abstractmethod
    async def scan(self, collection: str, limit: int | None = None) -> list[tuple[str, Document]]:
        """
        List the documents directly inside a collection, ordered by path.

        Args:
            collection: Collection path (e.g. "proposals", "watchlists/u1/items")
            limit: Maximum results

        Returns:
            List of (document path, document) tuples
        """
        pass

    # ═══════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def _read_versioned(self, path: str) -> tuple[Document | None, int]:
        """Read a document and its version (0 when absent)."""
        pass

    @abstractmethod
    async def _commit(self, transaction: Transaction) -> None:
        """
        Atomically validate the read set and apply the buffered writes.

        Raises:
            CommitConflict: If any read document changed since it was read
        """
        pass

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: int | None = None,
    ) -> T:
        """
        Run ``fn`` inside an optimistic transaction.

        The function may run more than once; it must only touch the store
        through the transaction it receives. Exceptions raised by ``fn``
        abort the transaction with no writes applied.

        Args:
            fn: Async callable receiving a Transaction
            max_attempts: Override for the number of runs before giving up

        Returns:
            Whatever ``fn`` returned on the committed run

        Raises:
            TransientStorageError: If the transaction kept losing to concurrent writers
        """
        attempts = max_attempts or self.transaction_attempts

        for attempt in range(1, attempts + 1):
            transaction = Transaction(self)
            result = await fn(transaction)
            try:
                await self._commit(transaction)
                return result
            except CommitConflict:
                logger.bind(attempt=attempt, paths=sorted(transaction.reads)).debug(
                    f"Transaction conflict (attempt {attempt}/{attempts}), re-running"
                )

        raise TransientStorageError(
            f"Transaction aborted after {attempts} conflicting attempts",
            context={"max_attempts": attempts},
        )

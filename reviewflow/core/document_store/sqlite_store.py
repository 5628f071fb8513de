"""
SQLite document store implementation.

Durable implementation using aiosqlite. Commits validate the read set inside
``BEGIN IMMEDIATE``, so first-committer-wins also holds between processes
that share the database file.
"""

import asyncio
import json
import sqlite3
from pathlib import Path

import aiosqlite

from reviewflow.core.document_store.base import (
    CommitConflict,
    Document,
    DocumentStore,
    Transaction,
    collection_path,
    document_path,
)
from reviewflow.utils.exceptions import TransientStorageError
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0]


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite-based document store.

    Features:
    - One row per document, JSON body
    - Global version sequence for optimistic transactions
    - WAL journal for concurrent readers
    """

    def __init__(self, db_path: str = "data/reviewflow.db", transaction_attempts: int = 5):
        """
        Initialize SQLite document store.

        Args:
            db_path: Path to SQLite database file
            transaction_attempts: Re-run ceiling for conflicting transactions
        """
        super().__init__(transaction_attempts=transaction_attempts)
        self.db_path = db_path
        self.connection: aiosqlite.Connection | None = None
        # One connection is shared by all tasks; statements must not interleave
        self._lock = asyncio.Lock()
        self._writes: set[asyncio.Future] = set()

        # Ensure directory exists
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> None:
        """Establish connection to SQLite."""
        if self.connection is None:
            # Autocommit mode: transactions are opened explicitly
            self.connection = await aiosqlite.connect(self.db_path, isolation_level=None)
            await self.connection.execute("PRAGMA journal_mode = WAL")
            await self.connection.execute("PRAGMA busy_timeout = 5000")

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()

        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                path TEXT PRIMARY KEY,
                parent TEXT NOT NULL,
                data TEXT NOT NULL,
                version INTEGER NOT NULL
            )
        """
        )
        await self.connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_parent ON documents(parent, path)"
        )
        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS sequence (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                value INTEGER NOT NULL
            )
        """
        )
        await self.connection.execute("INSERT OR IGNORE INTO sequence (id, value) VALUES (1, 0)")
        logger.info(f"SQLite document store ready at {self.db_path}")

    async def close(self) -> None:
        """Close the connection."""
        if self.connection is not None:
            # Let shielded writes of cancelled callers finish first
            await asyncio.gather(*self._writes, return_exceptions=True)
            await self.connection.close()
            self.connection = None

    # ═══════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════

    async def _next_version(self) -> int:
        await self.connection.execute("UPDATE sequence SET value = value + 1 WHERE id = 1")
        cursor = await self.connection.execute("SELECT value FROM sequence WHERE id = 1")
        row = await cursor.fetchone()
        return row[0]

    async def _version_of(self, path: str) -> int:
        cursor = await self.connection.execute(
            "SELECT version FROM documents WHERE path = ?", (path,)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def _write(self, path: str, doc: Document | None) -> None:
        if doc is None:
            await self.connection.execute("DELETE FROM documents WHERE path = ?", (path,))
            return
        version = await self._next_version()
        await self.connection.execute(
            """
            INSERT OR REPLACE INTO documents (path, parent, data, version)
            VALUES (?, ?, ?, ?)
            """,
            (path, _parent(path), json.dumps(doc), version),
        )

    async def _in_write_transaction(self, operation):
        """
        Run ``operation`` between BEGIN IMMEDIATE and COMMIT, mapping sqlite faults.

        The unit is shielded: a caller cancelled mid-write (e.g. by a fan-out
        timeout) stops waiting, but the transaction still ends in COMMIT or
        ROLLBACK before the connection is handed to the next task.
        """
        await self.connect()
        task = asyncio.ensure_future(self._write_unit(operation))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)
        return await asyncio.shield(task)

    async def _write_unit(self, operation):
        async with self._lock:
            if self.connection.in_transaction:
                logger.bind(db_path=self.db_path).warning(
                    "Connection left inside a transaction, rolling back"
                )
                await self.connection.execute("ROLLBACK")
            try:
                await self.connection.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise TransientStorageError(
                    f"Could not open write transaction: {e}", context={"db_path": self.db_path}
                ) from e
            try:
                result = await operation()
            except sqlite3.Error as e:
                await self.connection.execute("ROLLBACK")
                raise TransientStorageError(
                    f"Write failed: {e}", context={"db_path": self.db_path}
                ) from e
            except BaseException:
                await self.connection.execute("ROLLBACK")
                raise
            try:
                await self.connection.execute("COMMIT")
            except sqlite3.Error as e:
                await self.connection.execute("ROLLBACK")
                raise TransientStorageError(
                    f"Commit failed: {e}", context={"db_path": self.db_path}
                ) from e
            return result

    # ═══════════════════════════════════════════════════════════
    # DOCUMENT OPERATIONS
    # ═══════════════════════════════════════════════════════════

    async def get(self, path: str) -> Document | None:
        doc, _ = await self._read_versioned(document_path(path))
        return doc

    async def put(self, path: str, doc: Document) -> None:
        path = document_path(path)

        async def _put():
            await self._write(path, doc)

        await self._in_write_transaction(_put)

    async def create(self, path: str, doc: Document) -> bool:
        path = document_path(path)

        async def _create() -> bool:
            if await self._version_of(path):
                return False
            await self._write(path, doc)
            return True

        return await self._in_write_transaction(_create)

    async def delete(self, path: str) -> None:
        path = document_path(path)

        async def _delete():
            await self._write(path, None)

        await self._in_write_transaction(_delete)

    async def scan(self, collection: str, limit: int | None = None) -> list[tuple[str, Document]]:
        collection = collection_path(collection)
        await self.connect()

        query = "SELECT path, data FROM documents WHERE parent = ? ORDER BY path"
        params: list = [collection]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        async with self._lock:
            try:
                cursor = await self.connection.execute(query, params)
                rows = await cursor.fetchall()
            except sqlite3.Error as e:
                raise TransientStorageError(
                    f"Scan of {collection} failed: {e}", context={"collection": collection}
                ) from e

        return [(row[0], json.loads(row[1])) for row in rows]

    # ═══════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ═══════════════════════════════════════════════════════════

    async def _read_versioned(self, path: str) -> tuple[Document | None, int]:
        await self.connect()
        async with self._lock:
            try:
                cursor = await self.connection.execute(
                    "SELECT data, version FROM documents WHERE path = ?", (path,)
                )
                row = await cursor.fetchone()
            except sqlite3.Error as e:
                raise TransientStorageError(
                    f"Read of {path} failed: {e}", context={"path": path}
                ) from e

        if not row:
            return None, 0
        return json.loads(row[0]), row[1]

    async def _commit(self, transaction: Transaction) -> None:
        async def _apply():
            for path, seen in transaction.reads.items():
                if await self._version_of(path) != seen:
                    raise CommitConflict(path)
            for path, doc in transaction.writes.items():
                await self._write(path, doc)

        await self._in_write_transaction(_apply)

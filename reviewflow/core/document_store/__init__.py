"""
Document store implementations for ReviewFlow.

Provides the abstract transactional key-path store and concrete backends.

Available backends:
- InMemoryDocumentStore: Process-local, for tests and single-process runs
- SQLiteDocumentStore: Durable, file-backed via aiosqlite
"""

from reviewflow.core.document_store.base import DocumentStore, Transaction
from reviewflow.core.document_store.memory_store import InMemoryDocumentStore
from reviewflow.core.document_store.sqlite_store import SQLiteDocumentStore

__all__ = [
    "DocumentStore",
    "Transaction",
    "InMemoryDocumentStore",
    "SQLiteDocumentStore",
]

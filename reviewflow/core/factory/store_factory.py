"""
Factory for creating document store backends.
"""

from reviewflow.config import StoreConfig
from reviewflow.core.document_store.base import DocumentStore
from reviewflow.core.document_store.memory_store import InMemoryDocumentStore
from reviewflow.core.document_store.sqlite_store import SQLiteDocumentStore


class DocumentStoreFactory:
    """Factory for creating document store backends from configuration."""

    @staticmethod
    def create(config: StoreConfig) -> DocumentStore:
        """
        Create document store from configuration.

        Args:
            config: Store configuration

        Returns:
            Document store instance (not yet initialized)

        Raises:
            ValueError: If backend is not supported
        """
        if config.backend == "memory":
            return InMemoryDocumentStore(transaction_attempts=config.transaction_attempts)
        elif config.backend == "sqlite":
            return SQLiteDocumentStore(
                db_path=config.db_path,
                transaction_attempts=config.transaction_attempts,
            )
        else:
            raise ValueError(f"Unsupported store backend: {config.backend}")

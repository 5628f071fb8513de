"""
Factory modules for creating ReviewFlow components.

Provides factories for the document store backend and the fan-out dispatcher.
"""

from reviewflow.core.factory.dispatcher_factory import DispatcherFactory
from reviewflow.core.factory.store_factory import DocumentStoreFactory

__all__ = [
    "DocumentStoreFactory",
    "DispatcherFactory",
]

"""
Storage backend abstraction for ObsDB.

This module provides the backend interface the store is written against:
- StorageBackend protocol
- SQLite implementation (file or in-memory)

Invariants:
    - Literals are always bound parameters
    - Driver failures surface as BackendError

How to change safely:
    - New backends must implement the StorageBackend protocol
    - Run the integration suite against every backend
"""

from .base import StorageBackend, create_backend, quote_identifier
from .sqlite import SqliteBackend

__all__ = [
    # Protocol
    "StorageBackend",
    "quote_identifier",
    # Factory
    "create_backend",
    # Implementations
    "SqliteBackend",
]

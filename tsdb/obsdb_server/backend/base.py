"""
Base protocol for the relational storage backend.

This module defines the StorageBackend protocol that the store consumes.
The store never talks to a database driver directly; every statement goes
through a backend implementing this protocol.

Invariants:
    - Every literal is passed as a bound parameter, never interpolated
    - Identifiers (table and column names) are validated before use
    - Driver failures surface as BackendError
    - One connection is shared by all concurrent sub-queries of a call

How to change safely:
    - Protocol changes require updating all implementations
    - Keep statements portable SQL; backend specifics stay in the backend
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Protocol,
    Sequence,
    TYPE_CHECKING,
    runtime_checkable,
)
import logging
import re

from ..errors import InvalidArgumentError

if TYPE_CHECKING:
    from ..config import StorageConfig

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Row = Dict[str, Any]


def quote_identifier(name: str) -> str:
    """Validate an identifier and return it quoted for interpolation.

    Raises:
        InvalidArgumentError: If ``name`` is not a plain identifier
    """
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name):
        raise InvalidArgumentError(f"Invalid SQL identifier: {name!r}", argument="identifier")
    return f'"{name}"'


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for relational storage backends.

    Concurrency contract:
        - Several statements of one logical call may be outstanding at once
        - lock()/unlock() bracket a whole logical call when locking is enabled

    Example:
        >>> backend = SqliteBackend(StorageConfig(db_path=":memory:"))
        >>> await backend.connect()
        >>> row_id = await backend.insert("t", {"node": 1, "value": 2.0})
        >>> rows = await backend.query('SELECT * FROM "t" WHERE node = ?', (1,))
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection.

        Raises:
            BackendError: If the connection cannot be opened
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection, committing any open lock transaction."""
        ...

    @abstractmethod
    async def query(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        """Run a statement and return its rows as dicts.

        Raises:
            BackendError: If the statement fails
        """
        ...

    @abstractmethod
    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a statement and return the number of affected rows.

        Raises:
            BackendError: If the statement fails
        """
        ...

    @abstractmethod
    async def insert(self, table: str, values: Mapping[str, Any]) -> int:
        """Insert one row and return its generated id.

        Raises:
            InvalidArgumentError: If a table or column name is not an identifier
            BackendError: If the insert fails
        """
        ...

    @abstractmethod
    async def table_exists(self, table: str) -> bool:
        """Whether a table exists."""
        ...

    @abstractmethod
    async def create_partition(self, table: str, value_sql_type: str) -> None:
        """Create an observation partition with the given value column type."""
        ...

    @abstractmethod
    async def lock(self, tables: Sequence[str], exclusive: bool) -> None:
        """Take a shared or exclusive lock across ``tables``.

        Held until unlock(). Callers must always pair the two.
        """
        ...

    @abstractmethod
    async def unlock(self) -> None:
        """Release the lock taken by lock()."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the connection is open."""
        ...


def create_backend(config: "StorageConfig") -> StorageBackend:
    """Factory function to create a storage backend from configuration.

    Args:
        config: Storage configuration

    Returns:
        StorageBackend implementation
    """
    from .sqlite import SqliteBackend

    return SqliteBackend(config)

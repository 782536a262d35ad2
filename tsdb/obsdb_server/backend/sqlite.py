"""
SQLite storage backend for ObsDB.

This module provides the StorageBackend implementation used in production
deployments and tests. One connection is opened per backend and shared by
every statement; SQLite serializes statements on it.

Partition schema:
    <prefix>_ts_<kind>:
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - node BLOB (int or text node id, no affinity conversion)
        - field TEXT
        - value <kind specific type>
        - timestamp INTEGER (Unix ms)
        - latest INTEGER (0/1)
        - INDEX on node, field, latest

Invariants:
    - Connection runs in autocommit mode; lock() opens an explicit transaction
    - Only one lock holder per backend at a time
    - sqlite3 errors never escape; they are re-raised as BackendError

How to change safely:
    - Partition schema changes need a migration for existing databases
    - Keep `node` without type affinity so 5 and "5" stay distinct
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any, List, Mapping, Sequence

from ..config import StorageConfig
from ..errors import BackendError
from .base import Row, quote_identifier

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"

VALUE_SQL_TYPES = frozenset({"TEXT", "REAL", "INTEGER"})


class SqliteBackend:
    """SQLite implementation of StorageBackend.

    Thread safety:
        Not thread safe. Use from a single event loop; concurrent coroutines
        share the connection.

    Example:
        >>> backend = SqliteBackend(StorageConfig(db_path="/tmp/obsdb.db"))
        >>> await backend.connect()
        >>> await backend.create_partition("demo_ts_number", "REAL")
    """

    def __init__(self, config: StorageConfig | None = None) -> None:
        """Initialize the backend.

        Args:
            config: Storage configuration (database path and pragmas)
        """
        self.config = config or StorageConfig()
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Open the database, creating its directory if needed."""
        if self._conn is not None:
            return

        db_path = self.config.db_path
        try:
            if db_path != MEMORY_DB:
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                db_path,
                timeout=self.config.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit, explicit transactions for locks
            )
            conn.row_factory = sqlite3.Row

            conn.execute(f"PRAGMA busy_timeout = {int(self.config.busy_timeout_ms)}")
            if self.config.wal_mode and db_path != MEMORY_DB:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
        except (sqlite3.Error, OSError) as e:
            raise BackendError(f"Cannot open SQLite database {db_path}: {e}") from e

        self._conn = conn
        logger.info(f"Opened SQLite database: {db_path}")

    async def close(self) -> None:
        """Close the connection."""
        if self._conn is None:
            return
        try:
            if self._conn.in_transaction:
                self._conn.execute("COMMIT")
        finally:
            self._conn.close()
            self._conn = None
        logger.debug("SQLite backend closed")

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise BackendError("SQLite backend is not connected")
        return self._conn

    def _run(self, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        try:
            return self._connection().execute(sql, tuple(params))
        except (sqlite3.Error, OverflowError) as e:
            # Int parameters beyond the 64-bit INTEGER range raise OverflowError
            logger.error(f"SQLite statement failed: {e}", extra={"sql": sql})
            raise BackendError(f"SQLite statement failed: {e}") from e

    async def query(self, sql: str, params: Sequence[Any] = ()) -> List[Row]:
        cursor = self._run(sql, params)
        return [dict(row) for row in cursor.fetchall()]

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        return self._run(sql, params).rowcount

    async def insert(self, table: str, values: Mapping[str, Any]) -> int:
        columns = ", ".join(quote_identifier(column) for column in values)
        placeholders = ", ".join("?" for _ in values)
        cursor = self._run(
            f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES ({placeholders})",
            list(values.values()),
        )
        return int(cursor.lastrowid)

    async def table_exists(self, table: str) -> bool:
        rows = await self.query(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table,),
        )
        return len(rows) > 0

    async def create_partition(self, table: str, value_sql_type: str) -> None:
        name = quote_identifier(table)
        if value_sql_type not in VALUE_SQL_TYPES:
            raise BackendError(f"Unsupported value column type for SQLite: {value_sql_type}")
        try:
            self._connection().executescript(f"""
                CREATE TABLE IF NOT EXISTS {name} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    node BLOB NOT NULL,
                    field TEXT NOT NULL,
                    value {value_sql_type},
                    timestamp INTEGER NOT NULL,
                    latest INTEGER NOT NULL DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS "idx_{table}_node" ON {name}(node);
                CREATE INDEX IF NOT EXISTS "idx_{table}_field" ON {name}(field);
                CREATE INDEX IF NOT EXISTS "idx_{table}_latest" ON {name}(latest);
            """)
        except sqlite3.Error as e:
            raise BackendError(f"Cannot create partition {table}: {e}") from e

    async def lock(self, tables: Sequence[str], exclusive: bool) -> None:
        """Serialize lock holders and open a transaction.

        SQLite locks the whole database file, which covers every partition
        in ``tables``. An exclusive lock takes the write lock immediately; a
        shared lock reads from one consistent snapshot.
        """
        await self._lock.acquire()
        try:
            self._run("BEGIN IMMEDIATE" if exclusive else "BEGIN DEFERRED", ())
        except BackendError:
            self._lock.release()
            raise
        logger.debug(
            "Partition lock acquired",
            extra={"tables": list(tables), "exclusive": exclusive},
        )

    async def unlock(self) -> None:
        try:
            conn = self._conn
            if conn is not None and conn.in_transaction:
                self._run("COMMIT", ())
        finally:
            if self._lock.locked():
                self._lock.release()

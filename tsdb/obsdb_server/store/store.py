"""
Object-valued time series store.

This module implements the public operations of ObsDB on top of a
StorageBackend:
- insert_object: flatten a nested object into timestamped observations
- synthesize_object / synthesize_object_at: rebuild a node's state
- get_series: recent observations of one field
- search: nodes whose field held a value
- exists / remove: node presence and deletion
- get_stats: partition row counts

Each operation fans out over the five typed partitions. Branches run
concurrently on the shared connection and are always all awaited; the first
failure is raised afterwards. Nothing is rolled back.

Invariants:
    - Validation errors are raised before any backend call
    - Operations other than initialize() require initialize() first
    - With locking enabled every operation holds the partition-set lock

How to change safely:
    - Keep the series scan order stable; callers rely on it for fields that
      changed kind
    - Any new statement must bind literals as parameters
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from ..backend.base import StorageBackend, quote_identifier
from ..config import StoreConfig
from ..errors import (
    ConfirmationRequiredError,
    InvalidArgumentError,
    NotInitializedError,
    UnsupportedTypeError,
)
from .codec import ValueKind, classify, decode, encode, from_millis, require_datetime
from .latest import NodeId, write_observation
from .partitions import Partition, PartitionRouter
from .paths import StoredLeaf, flatten, unflatten, validate_field

logger = logging.getLogger(__name__)

MAX_NODE_SIZE = 255
MIN_INTEGER_NODE = -(2**63)
MAX_INTEGER_NODE = 2**63 - 1
MAX_LIMIT = 10000

INTEGER_NODE_RE = re.compile(r"^-?\d+$")

T = TypeVar("T")


@dataclass(frozen=True)
class SeriesPoint:
    """One observation of a field series.

    Attributes:
        value: Decoded value
        timestamp: Event time (UTC)
    """

    value: Any
    timestamp: datetime


@dataclass(frozen=True)
class SearchHit:
    """A node whose field held the searched value.

    Attributes:
        node: Node id
        value: Decoded value
        timestamp: Event time (UTC)
    """

    node: NodeId
    value: Any
    timestamp: datetime


def validate_node(node: Any) -> NodeId:
    """Check a node id: a 64-bit int, or a string of 1 to 255 characters."""
    if isinstance(node, bool):
        raise InvalidArgumentError("Node id must not be a boolean", argument="node")
    if isinstance(node, int):
        if not MIN_INTEGER_NODE <= node <= MAX_INTEGER_NODE:
            raise InvalidArgumentError(
                f"Integer node id {node} is outside the signed 64-bit range", argument="node"
            )
        return node
    if isinstance(node, str) and 0 < len(node) <= MAX_NODE_SIZE:
        return node
    raise InvalidArgumentError(
        f"Node of type {type(node).__name__} is not an integer or a string "
        f"of 1 to {MAX_NODE_SIZE} characters",
        argument="node",
    )


def node_from_text(text: str) -> NodeId:
    """Parse a node id typed on a command line or URL; digit-only text is an int."""
    return int(text) if INTEGER_NODE_RE.match(text) else text


def validate_limit(limit: Any) -> int:
    """Check a result limit."""
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LIMIT:
        raise InvalidArgumentError(
            f"Limit must be a natural number not above {MAX_LIMIT}, got {limit!r}",
            argument="limit",
        )
    return limit


async def gather_all(*aws: Awaitable[T]) -> list[T]:
    """Await every branch, then raise the first failure if any failed."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


class TimeSeriesStore:
    """Type-partitioned store of timestamped object observations.

    Attributes:
        backend: Storage backend shared by all partitions
        config: Store configuration (partition prefix, locking mode)
        router: Kind to partition mapping

    Example:
        >>> store = TimeSeriesStore(SqliteBackend(), StoreConfig(table_prefix="example"))
        >>> await store.initialize()
        >>> await store.insert_object("id-1", {"a": 1, "b": "Hello"}, now)
        >>> await store.synthesize_object("id-1")
        {'a': Leaf(value=1.0, ...), 'b': Leaf(value='Hello', ...)}
    """

    def __init__(self, backend: StorageBackend, config: StoreConfig | None = None) -> None:
        """Initialize the store.

        Args:
            backend: Storage backend
            config: Store configuration

        Raises:
            NotInitializedError: If the configuration has no partition prefix
        """
        self.backend = backend
        self.config = config or StoreConfig()
        self.router = PartitionRouter(self.config.table_prefix)
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Connect the backend and create any missing partitions."""
        if not self.backend.is_connected:
            await self.backend.connect()

        for partition in self.router.partitions():
            if await self.backend.table_exists(partition.table):
                logger.info(f"Partition {partition.table} for type {partition.kind.value} exists")
                continue
            logger.info(
                f"Partition {partition.table} for type {partition.kind.value} does not exist, creating"
            )
            await self.backend.create_partition(partition.table, partition.value_sql_type)

        self._initialized = True

    async def close(self) -> None:
        """Close the backend."""
        await self.backend.close()
        self._initialized = False

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Call initialize before accessing partitions")

    @asynccontextmanager
    async def _locked(self, exclusive: bool) -> AsyncIterator[None]:
        if not self.config.enable_lock:
            yield
            return
        await self.backend.lock(self.router.tables(), exclusive)
        try:
            yield
        finally:
            await self.backend.unlock()

    async def insert_object(self, node: Any, obj: Any, timestamp: Any) -> int:
        """Record every leaf of a nested object at one timestamp.

        Args:
            node: Node id
            obj: Mapping of attributes; nested mappings become dotted paths
            timestamp: Event time of all leaves

        Returns:
            Number of observations written

        Raises:
            InvalidArgumentError: For a bad node, timestamp, key or path
            ValueTooLargeError: For an oversize string or array
            UnsupportedTypeError: For a leaf with no storable shape
            BackendError: If a write fails; earlier writes stay applied
        """
        self._require_initialized()
        if not isinstance(obj, Mapping):
            raise InvalidArgumentError(
                f"Inserted value of type {type(obj).__name__} is not an object", argument="object"
            )
        timestamp_ms = require_datetime(timestamp, "timestamp")
        node = validate_node(node)
        leaves = list(flatten(obj))

        async with self._locked(exclusive=True):
            await gather_all(
                *(
                    write_observation(
                        self.backend,
                        self.router.table_for(leaf.kind),
                        node,
                        leaf.field,
                        leaf.value,
                        timestamp_ms,
                    )
                    for leaf in leaves
                )
            )

        logger.debug(
            "Inserted object",
            extra={"node": node, "fields": len(leaves), "timestamp_ms": timestamp_ms},
        )
        return len(leaves)

    async def _select_rows(
        self,
        partition: Partition,
        node: NodeId,
        condition: str,
        params: tuple[Any, ...],
    ) -> list[tuple[Partition, dict[str, Any]]]:
        rows = await self.backend.query(
            f"SELECT field, value, timestamp FROM {quote_identifier(partition.table)} "
            f"WHERE node = ? AND {condition} ORDER BY timestamp ASC, id ASC",
            (node, *params),
        )
        return [(partition, row) for row in rows]

    async def _synthesize(self, node: NodeId, condition: str, params: tuple[Any, ...]) -> dict[str, Any]:
        async with self._locked(exclusive=False):
            per_partition = await gather_all(
                *(
                    self._select_rows(partition, node, condition, params)
                    for partition in self.router.partitions()
                )
            )

        merged: dict[str, StoredLeaf] = {}
        for rows in per_partition:
            for partition, row in rows:
                current = merged.get(row["field"])
                if current is None or row["timestamp"] >= current.timestamp:
                    merged[row["field"]] = StoredLeaf(row["value"], partition.kind, row["timestamp"])
        return unflatten(merged)

    async def synthesize_object(self, node: Any) -> dict[str, Any]:
        """Rebuild the current state of a node from its latest observations.

        Returns:
            Nested dict whose leaves are Leaf(value, timestamp); empty if the
            node has no observations
        """
        self._require_initialized()
        node = validate_node(node)
        return await self._synthesize(node, "latest <> 0", ())

    async def synthesize_object_at(self, node: Any, at: Any) -> dict[str, Any]:
        """Rebuild the state of a node as of an instant.

        Each leaf is the newest observation with timestamp <= ``at``.
        """
        self._require_initialized()
        node = validate_node(node)
        at_ms = require_datetime(at, "at")
        return await self._synthesize(node, "timestamp <= ?", (at_ms,))

    async def get_series(self, node: Any, field: Any, at: Any, limit: Any) -> list[SeriesPoint]:
        """Return the most recent observations of one field, newest first.

        Partitions are scanned in the order string, number, array, date,
        boolean and the first one holding data for the field answers.

        Args:
            node: Node id
            field: Full field path, e.g. ".a" or ".sub.value"
            at: Only observations at or before this instant
            limit: Maximum number of points (1 to 10000)
        """
        self._require_initialized()
        node = validate_node(node)
        field = validate_field(field)
        at_ms = require_datetime(at, "at")
        limit = validate_limit(limit)

        async with self._locked(exclusive=False):
            for partition in self.router.partitions():
                rows = await self.backend.query(
                    f"SELECT value, timestamp FROM {quote_identifier(partition.table)} "
                    "WHERE node = ? AND field = ? AND timestamp <= ? "
                    "ORDER BY timestamp DESC, id DESC LIMIT ?",
                    (node, field, at_ms, limit),
                )
                if rows:
                    return [
                        SeriesPoint(decode(partition.kind, row["value"]), from_millis(row["timestamp"]))
                        for row in rows
                    ]
        return []

    async def search(self, field: Any, value: Any, at: Any, limit: Any) -> list[SearchHit]:
        """Find nodes whose field held ``value`` at or before an instant.

        Only the partition matching the kind of ``value`` is searched.

        Raises:
            UnsupportedTypeError: If ``value`` is an object or has no
                storable shape
        """
        self._require_initialized()
        field = validate_field(field)
        kind = classify(value)
        if kind is ValueKind.OBJECT:
            raise UnsupportedTypeError("Cannot search for object values", type_name="object")
        encoded = encode(kind, value)
        at_ms = require_datetime(at, "at")
        limit = validate_limit(limit)
        partition = self.router.partition_for(kind)

        async with self._locked(exclusive=False):
            rows = await self.backend.query(
                f"SELECT node, value, timestamp FROM {quote_identifier(partition.table)} "
                "WHERE field = ? AND value = ? AND timestamp <= ? "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (field, encoded, at_ms, limit),
            )
        return [
            SearchHit(row["node"], decode(kind, row["value"]), from_millis(row["timestamp"]))
            for row in rows
        ]

    async def exists(self, node: Any) -> bool:
        """Whether any partition holds an observation for ``node``."""
        self._require_initialized()
        node = validate_node(node)
        async with self._locked(exclusive=False):
            for table in self.router.tables():
                rows = await self.backend.query(
                    f"SELECT 1 FROM {quote_identifier(table)} WHERE node = ? LIMIT 1",
                    (node,),
                )
                if rows:
                    return True
        return False

    async def remove(self, node: Any, confirmed: bool = False) -> int:
        """Delete every observation of a node from every partition.

        Args:
            node: Node id
            confirmed: Must be True

        Returns:
            Number of rows deleted

        Raises:
            ConfirmationRequiredError: Unless ``confirmed`` is True
        """
        self._require_initialized()
        node = validate_node(node)
        if confirmed is not True:
            raise ConfirmationRequiredError(f"Removing node {node!r} requires confirmed=True")

        async with self._locked(exclusive=True):
            counts = await gather_all(
                *(
                    self.backend.execute(f"DELETE FROM {quote_identifier(table)} WHERE node = ?", (node,))
                    for table in self.router.tables()
                )
            )

        removed = sum(counts)
        logger.info(f"Removed node {node!r}", extra={"node": node, "rows": removed})
        return removed

    async def get_stats(self) -> dict[str, int]:
        """Row counts per partition kind, total observations and distinct nodes."""
        self._require_initialized()
        stats: dict[str, int] = {}
        async with self._locked(exclusive=False):
            for partition in self.router.partitions():
                rows = await self.backend.query(
                    f"SELECT COUNT(*) AS n FROM {quote_identifier(partition.table)}"
                )
                stats[partition.kind.value] = rows[0]["n"]

            union = " UNION ".join(
                f"SELECT node FROM {quote_identifier(table)}" for table in self.router.tables()
            )
            rows = await self.backend.query(f"SELECT COUNT(*) AS n FROM ({union})")

        stats["observations"] = sum(stats[p.kind.value] for p in self.router.partitions())
        stats["nodes"] = rows[0]["n"]
        return stats

"""
Latest-pointer maintenance for single-field writes.

For every (node, field) pair one row carries latest = 1: the row with the
greatest timestamp, ties going to the greatest id. Snapshot reads of the
current state only look at those rows.

A write runs four steps against the field's partition:
    1. look for a latest row with a strictly greater timestamp
    2. the new row is latest only if none exists
    3. insert the new row
    4. if it is latest, demote every other latest row for the pair

Invariants:
    - Sequential writes keep exactly one latest row per (node, field)
    - The demotion is awaited before the write is reported done

Steps 1-2 and 3-4 are separate statements. Concurrent writers to the same
pair can interleave between them and leave the marker wrong until the next
write settles it; the store's opt-in locking mode serializes writers.
"""

from __future__ import annotations

import logging
from typing import Any

from ..backend.base import StorageBackend, quote_identifier

logger = logging.getLogger(__name__)

NodeId = int | str


async def has_more_recent(
    backend: StorageBackend,
    table: str,
    node: NodeId,
    field: str,
    timestamp_ms: int,
) -> bool:
    """Whether a latest row newer than ``timestamp_ms`` exists for the pair."""
    rows = await backend.query(
        f"SELECT id FROM {quote_identifier(table)} "
        "WHERE node = ? AND field = ? AND latest = 1 AND timestamp > ? LIMIT 1",
        (node, field, timestamp_ms),
    )
    return len(rows) > 0


async def demote_others(
    backend: StorageBackend,
    table: str,
    node: NodeId,
    field: str,
    keep_id: int,
) -> int:
    """Clear the latest marker on every row of the pair except ``keep_id``."""
    return await backend.execute(
        f"UPDATE {quote_identifier(table)} SET latest = 0 "
        "WHERE node = ? AND field = ? AND latest = 1 AND id <> ?",
        (node, field, keep_id),
    )


async def write_observation(
    backend: StorageBackend,
    table: str,
    node: NodeId,
    field: str,
    value: Any,
    timestamp_ms: int,
) -> int:
    """Insert one encoded observation and keep the latest marker correct.

    Args:
        backend: Storage backend
        table: Partition for the value's kind
        node: Node id
        field: Full field path
        value: Encoded value
        timestamp_ms: Event time in milliseconds

    Returns:
        Id of the inserted row
    """
    latest = 0 if await has_more_recent(backend, table, node, field, timestamp_ms) else 1
    row_id = await backend.insert(
        table,
        {
            "node": node,
            "field": field,
            "value": value,
            "timestamp": timestamp_ms,
            "latest": latest,
        },
    )
    demoted = 0
    if latest:
        demoted = await demote_others(backend, table, node, field, row_id)

    logger.debug(
        "Wrote observation",
        extra={
            "table": table,
            "node": node,
            "field": field,
            "row_id": row_id,
            "latest": latest,
            "demoted": demoted,
        },
    )
    return row_id

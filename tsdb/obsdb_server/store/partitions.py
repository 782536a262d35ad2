"""
Partition routing for typed observations.

Every storable value kind has exactly one partition (table) per store.
Partition names are derived from the store's configured prefix:

    <prefix>_ts_string, <prefix>_ts_number, <prefix>_ts_array,
    <prefix>_ts_date, <prefix>_ts_boolean

Invariants:
    - A router without a prefix cannot be constructed
    - The same kind always maps to the same partition for a router's lifetime
    - Partition names are valid SQL identifiers; they are interpolated into
      statements, never bound as parameters
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import InvalidArgumentError, NotInitializedError, UnknownTypeError
from .codec import ValueKind

MAX_PREFIX_SIZE = 48

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Series reads scan partitions in this order and stop at the first hit
PARTITION_SUFFIXES: dict[ValueKind, str] = {
    ValueKind.STRING: "ts_string",
    ValueKind.NUMBER: "ts_number",
    ValueKind.ARRAY: "ts_array",
    ValueKind.DATE: "ts_date",
    ValueKind.BOOLEAN: "ts_boolean",
}

VALUE_SQL_TYPES: dict[ValueKind, str] = {
    ValueKind.STRING: "TEXT",
    ValueKind.NUMBER: "REAL",
    ValueKind.ARRAY: "TEXT",
    ValueKind.DATE: "INTEGER",
    ValueKind.BOOLEAN: "INTEGER",
}


def validate_prefix(prefix: str | None) -> str:
    """Check a partition prefix.

    Raises:
        NotInitializedError: If no prefix is given
        InvalidArgumentError: If the prefix is not a usable SQL identifier
    """
    if not prefix:
        raise NotInitializedError("No partition prefix configured")
    if not isinstance(prefix, str) or len(prefix) > MAX_PREFIX_SIZE or not IDENTIFIER_RE.match(prefix):
        raise InvalidArgumentError(
            f"Partition prefix {prefix!r} must be an identifier of at most {MAX_PREFIX_SIZE} characters",
            argument="prefix",
        )
    return prefix


@dataclass(frozen=True)
class Partition:
    """One physical partition.

    Attributes:
        kind: Value kind stored in the partition
        table: Table name
        value_sql_type: SQL type of the value column
    """

    kind: ValueKind
    table: str
    value_sql_type: str


class PartitionRouter:
    """Maps value kinds to the partitions of one store.

    Example:
        >>> router = PartitionRouter("example")
        >>> router.table_for(ValueKind.NUMBER)
        'example_ts_number'
    """

    def __init__(self, prefix: str | None) -> None:
        self.prefix = validate_prefix(prefix)
        self._partitions = {
            kind: Partition(kind, f"{self.prefix}_{suffix}", VALUE_SQL_TYPES[kind])
            for kind, suffix in PARTITION_SUFFIXES.items()
        }

    def partition_for(self, kind: ValueKind | str) -> Partition:
        """Get the partition for a kind or kind name.

        Raises:
            UnknownTypeError: If no partition stores that kind
        """
        if isinstance(kind, str):
            try:
                kind = ValueKind(kind)
            except ValueError:
                raise UnknownTypeError(f"No partition known for type {kind}") from None
        partition = self._partitions.get(kind)
        if partition is None:
            raise UnknownTypeError(f"No partition known for type {kind.value}")
        return partition

    def table_for(self, kind: ValueKind | str) -> str:
        """Get the table name for a kind."""
        return self.partition_for(kind).table

    def partitions(self) -> list[Partition]:
        """All partitions, in series scan order."""
        return list(self._partitions.values())

    def tables(self) -> list[str]:
        """All table names, in series scan order."""
        return [p.table for p in self._partitions.values()]

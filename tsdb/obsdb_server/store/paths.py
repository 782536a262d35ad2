"""
Flattening of nested objects into field paths, and the reverse.

An object such as ``{"a": 1, "sub": {"value": "x"}}`` inserted under the
base path ``""`` becomes two leaf observations, ``.a`` and ``.sub.value``.
Reading a node back merges its leaf rows and rebuilds the nesting.

Invariants:
    - Object keys are non-empty strings without dots, so every flattened
      path unflattens to the same shape
    - A path position is either a leaf or an interior node, never both
    - Unflatten processes paths in lexicographic order
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..errors import InvalidArgumentError, StructuralConflictError
from .codec import MAX_FIELD_SIZE, ValueKind, classify, decode, encode, from_millis

PATH_SEPARATOR = "."


@dataclass(frozen=True)
class FlatValue:
    """One encoded leaf produced by flattening.

    Attributes:
        field: Full dotted path
        kind: Value kind (selects the partition)
        value: Encoded value
    """

    field: str
    kind: ValueKind
    value: Any


@dataclass(frozen=True)
class StoredLeaf:
    """One leaf row read back from a partition."""

    value: Any
    kind: ValueKind
    timestamp: int


@dataclass(frozen=True)
class Leaf:
    """A decoded leaf in a synthesized object.

    Attributes:
        value: Decoded value
        timestamp: Event time of the observation (UTC)
    """

    value: Any
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "timestamp": self.timestamp}


def validate_field(field: Any) -> str:
    """Check a field path argument."""
    if not isinstance(field, str) or not field or len(field) > MAX_FIELD_SIZE:
        raise InvalidArgumentError(
            f"Field {field!r} is not a string of 1 to {MAX_FIELD_SIZE} characters",
            argument="field",
        )
    return field


def _validate_key(key: Any, base: str) -> str:
    if not isinstance(key, str) or not key or PATH_SEPARATOR in key:
        raise InvalidArgumentError(
            f"Attribute {key!r} under {base or 'root'} must be a non-empty string without '.'",
            argument="key",
        )
    return key


def flatten(value: Any, base: str = "") -> Iterator[FlatValue]:
    """Flatten a value into encoded leaves.

    A primitive yields one leaf at ``base``; a mapping recurses per item
    with ``.key`` appended. Classification and encoding happen here, so a
    fully consumed flatten() has validated every leaf.
    """
    kind = classify(value)
    if kind is ValueKind.OBJECT:
        for key, item in value.items():
            yield from flatten(item, base + PATH_SEPARATOR + _validate_key(key, base))
        return
    yield FlatValue(validate_field(base), kind, encode(kind, value))


def split_path(path: str) -> list[str]:
    """Split a dotted path into segments, dropping the leading empty one."""
    segments = path.split(PATH_SEPARATOR)
    if segments and segments[0] == "":
        segments = segments[1:]
    return segments


def unflatten(leaves: Mapping[str, StoredLeaf]) -> dict[str, Any]:
    """Rebuild a nested object from leaf rows keyed by path.

    Raises:
        StructuralConflictError: If a path is both a leaf and a prefix of
            another path
    """
    result: dict[str, Any] = {}
    for path in sorted(leaves):
        segments = split_path(path)
        if not segments:
            raise StructuralConflictError(f"Path {path!r} has no attribute segment", path=path)

        target = result
        for segment in segments[:-1]:
            child = target.get(segment)
            if child is None:
                child = target[segment] = {}
            elif not isinstance(child, dict):
                raise StructuralConflictError(
                    f"The object has value and object at same location: {path}", path=path
                )
            target = child

        name = segments[-1]
        if isinstance(target.get(name), dict):
            raise StructuralConflictError(
                f"The object has value and object at same location: {path}", path=path
            )
        stored = leaves[path]
        target[name] = Leaf(decode(stored.kind, stored.value), from_millis(stored.timestamp))
    return result


def snapshot_to_dict(snapshot: Mapping[str, Any]) -> dict[str, Any]:
    """Render a synthesized object as plain nested dicts."""
    return {
        key: item.to_dict() if isinstance(item, Leaf) else snapshot_to_dict(item)
        for key, item in snapshot.items()
    }

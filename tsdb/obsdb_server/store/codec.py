"""
Value codec for typed observations.

Classifies application values into a closed set of kinds and converts them
to and from the representation stored in each kind's partition:

    BOOLEAN  bool                      -> 0 / 1
    NUMBER   finite float, exact int   -> float
    STRING   str                       -> text
    DATE     datetime                  -> integer ms since epoch
    ARRAY    list / tuple              -> canonical JSON text
    OBJECT   Mapping                   -> not stored, flattened into fields

Invariants:
    - classify() never falls through to OBJECT; every kind is matched explicitly
    - bool is matched before numbers
    - decode(kind, encode(kind, v)) == v for millisecond-precision values;
      naive datetimes come back as the equal instant in UTC
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from ..errors import InvalidArgumentError, UnknownTypeError, UnsupportedTypeError, ValueTooLargeError

MAX_FIELD_SIZE = 512
MAX_STRING_SIZE = 4096
MAX_ARRAY_SIZE = 16384

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ValueKind(Enum):
    """Shape of an application value."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"
    OBJECT = "object"

    @property
    def is_storable(self) -> bool:
        """Whether values of this kind live in a partition."""
        return self is not ValueKind.OBJECT


def classify(value: Any) -> ValueKind:
    """Determine the kind of a value.

    Raises:
        UnsupportedTypeError: For non-finite numbers, ints a float cannot hold
            exactly and any shape outside the six kinds
    """
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int):
        try:
            exact = int(float(value)) == value
        except OverflowError:
            exact = False
        if not exact:
            raise UnsupportedTypeError(
                f"Integer {value} has no exact float representation", type_name="int"
            )
        return ValueKind.NUMBER
    if isinstance(value, float):
        if not math.isfinite(value):
            raise UnsupportedTypeError(
                f"Non-finite number {value!r} cannot be stored", type_name="float"
            )
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, datetime):
        return ValueKind.DATE
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, Mapping):
        return ValueKind.OBJECT
    raise UnsupportedTypeError(
        f"No support for value of type {type(value).__name__}", type_name=type(value).__name__
    )


def to_millis(when: datetime) -> int:
    """Convert a datetime to integer milliseconds since the epoch.

    Naive datetimes are taken as UTC.
    """
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = when - EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_millis(value_ms: int) -> datetime:
    """Convert integer milliseconds since the epoch to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=int(value_ms))


def require_datetime(value: Any, argument: str) -> int:
    """Validate an instant argument and return it in milliseconds."""
    if not isinstance(value, datetime):
        raise InvalidArgumentError(
            f"{argument} of type {type(value).__name__} is not a datetime", argument=argument
        )
    return to_millis(value)


def canonical_json(value: Any) -> str:
    """Serialize an array to its canonical JSON text."""
    try:
        return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise UnsupportedTypeError(f"Array cannot be serialized: {e}", type_name="array") from e


def encode(kind: ValueKind, value: Any) -> Any:
    """Encode a classified value for its partition.

    Raises:
        ValueTooLargeError: For oversize strings and arrays
        UnknownTypeError: For OBJECT, which has no stored form
    """
    if kind is ValueKind.BOOLEAN:
        return 1 if value else 0
    if kind is ValueKind.NUMBER:
        return float(value)
    if kind is ValueKind.STRING:
        if len(value) > MAX_STRING_SIZE:
            raise ValueTooLargeError(
                f"String value of length {len(value)} exceeds max length {MAX_STRING_SIZE}",
                size=len(value),
                limit=MAX_STRING_SIZE,
            )
        return value
    if kind is ValueKind.DATE:
        return to_millis(value)
    if kind is ValueKind.ARRAY:
        representation = canonical_json(list(value))
        if len(representation) > MAX_ARRAY_SIZE:
            raise ValueTooLargeError(
                f"Array representation of length {len(representation)} exceeds max length {MAX_ARRAY_SIZE}",
                size=len(representation),
                limit=MAX_ARRAY_SIZE,
            )
        return representation
    raise UnknownTypeError(f"Values of kind {kind.value} have no stored form")


def encode_value(value: Any) -> tuple[ValueKind, Any]:
    """Classify and encode a primitive value in one step."""
    kind = classify(value)
    if not kind.is_storable:
        raise UnsupportedTypeError("Objects are flattened, not stored as values", type_name="object")
    return kind, encode(kind, value)


def decode(kind: ValueKind, stored: Any) -> Any:
    """Decode a stored value read from the partition of ``kind``."""
    if kind is ValueKind.BOOLEAN:
        return bool(stored)
    if kind is ValueKind.NUMBER:
        return stored
    if kind is ValueKind.STRING:
        return stored
    if kind is ValueKind.DATE:
        return from_millis(stored)
    if kind is ValueKind.ARRAY:
        return json.loads(stored)
    raise UnknownTypeError(f"Cannot convert {kind.value} to a value")

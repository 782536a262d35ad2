"""
Error types for the ObsDB store.

This module defines every exception raised by the store and its backends:
- ObsDbError: Base exception
- NotInitializedError: Store used before setup
- InvalidArgumentError: Malformed node, field, timestamp, limit or key
- ValueTooLargeError: Value exceeds its kind's maximum size
- UnsupportedTypeError: Value has no storable shape
- UnknownTypeError: No partition exists for a value kind
- StructuralConflictError: A path is both a leaf and an interior node
- ConfirmationRequiredError: Destructive call without confirmation
- BackendError: Failure surfaced from the storage backend

Invariants:
    - All errors inherit from ObsDbError
    - Each error carries a stable code for programmatic handling
    - Validation errors are raised before any backend call is issued
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ObsDbError(Exception):
    """Base exception for all ObsDB errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    code = "OBSDB_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotInitializedError(ObsDbError):
    """Store has no partition prefix or initialize() has not run."""

    code = "NOT_INITIALIZED"


class InvalidArgumentError(ObsDbError):
    """An argument failed validation.

    Raised when:
    - Node id is not a bounded string or an integer
    - Field path is empty or too long
    - Timestamp is not a datetime
    - Limit is outside its allowed range
    - An object key is empty, not a string, or contains a dot
    """

    code = "INVALID_ARGUMENT"

    def __init__(self, message: str, argument: Optional[str] = None) -> None:
        super().__init__(message, details={"argument": argument})
        self.argument = argument


class ValueTooLargeError(ObsDbError):
    """A string or array exceeds the maximum storable size."""

    code = "VALUE_TOO_LARGE"

    def __init__(self, message: str, size: int, limit: int) -> None:
        super().__init__(message, details={"size": size, "limit": limit})
        self.size = size
        self.limit = limit


class UnsupportedTypeError(ObsDbError):
    """A value is not a number, string, boolean, datetime, list or mapping."""

    code = "UNSUPPORTED_TYPE"

    def __init__(self, message: str, type_name: Optional[str] = None) -> None:
        super().__init__(message, details={"type_name": type_name})
        self.type_name = type_name


class UnknownTypeError(ObsDbError):
    """No partition is defined for the requested value kind."""

    code = "UNKNOWN_TYPE"


class StructuralConflictError(ObsDbError):
    """A path position holds both a leaf value and nested fields."""

    code = "STRUCTURAL_CONFLICT"

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message, details={"path": path})
        self.path = path


class ConfirmationRequiredError(ObsDbError):
    """A destructive operation was called without explicit confirmation."""

    code = "CONFIRMATION_REQUIRED"


class BackendError(ObsDbError):
    """The storage backend failed.

    The underlying driver exception is chained as ``__cause__``.
    Writes already applied by the failing operation are not undone.
    """

    code = "BACKEND_FAILURE"

"""
API module for ObsDB.

This module provides the HTTP interface to the store:
- FastAPI application factory
- REST routes mirroring the store operations

Invariants:
    - Routes are thin; all validation happens in the store
    - Error codes match ObsDbError.code
"""

from .http_server import create_http_app, router

__all__ = ["create_http_app", "router"]

"""
HTTP server implementation for ObsDB.

This module provides a REST API over TimeSeriesStore. It's useful for:
- Recording observations from services that can't embed the store
- Browsing node snapshots and series during debugging

Invariants:
    - HTTP endpoints have the same semantics as the store operations
    - JSON request/response format; instants are ISO 8601
    - Store errors map to {"error", "error_code"} bodies

How to change safely:
    - Keep endpoints in sync with TimeSeriesStore
    - Version the API if breaking changes are needed
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .._version import __version__
from ..backend import create_backend
from ..config import ServerConfig
from ..errors import (
    BackendError,
    ConfirmationRequiredError,
    InvalidArgumentError,
    NotInitializedError,
    ObsDbError,
    StructuralConflictError,
    ValueTooLargeError,
)
from ..store import TimeSeriesStore, snapshot_to_dict
from ..store.store import node_from_text

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[ObsDbError], int] = {
    InvalidArgumentError: 400,
    ValueTooLargeError: 413,
    ConfirmationRequiredError: 409,
    StructuralConflictError: 409,
    NotInitializedError: 503,
    BackendError: 502,
}


# --- Request/Response Models ---


class InsertRequest(BaseModel):
    """Request to record an object at one instant."""

    object: dict[str, Any] = Field(..., description="Nested attributes to record")
    timestamp: datetime = Field(..., description="Event time of every attribute")


class InsertResponse(BaseModel):
    """Result of an insert."""

    node: int | str
    written: int


class SeriesPointResponse(BaseModel):
    """One point of a field series."""

    value: Any
    timestamp: datetime


class SearchHitResponse(BaseModel):
    """One search match."""

    node: int | str
    value: Any
    timestamp: datetime


class ExistsResponse(BaseModel):
    """Node presence."""

    node: int | str
    exists: bool


class RemoveResponse(BaseModel):
    """Result of a node removal."""

    node: int | str
    removed: int


# --- Dependencies ---


def get_store(request: Request) -> TimeSeriesStore:
    """Get the store from app state."""
    return request.app.state.store


def resolve_instant(at: datetime | None) -> datetime:
    """Default a missing instant to now."""
    return at if at is not None else datetime.now(timezone.utc)


def jsonable(value: Any) -> Any:
    """Render decoded values (datetimes included) for JSON responses."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [jsonable(v) for v in value]
    return value


# --- Routes ---

router = APIRouter(tags=["ObsDB"])


@router.post("/nodes/{node}/observations", response_model=InsertResponse)
async def insert_observations(
    node: str,
    body: InsertRequest,
    store: TimeSeriesStore = Depends(get_store),
):
    """Record every attribute of an object at the given timestamp."""
    node_id = node_from_text(node)
    written = await store.insert_object(node_id, body.object, body.timestamp)
    return InsertResponse(node=node_id, written=written)


@router.get("/nodes/{node}")
async def get_snapshot(
    node: str,
    at: datetime | None = Query(None, description="Instant to read at (default: latest state)"),
    store: TimeSeriesStore = Depends(get_store),
):
    """Synthesize the node's current state, or its state as of `at`."""
    node_id = node_from_text(node)
    if at is None:
        snapshot = await store.synthesize_object(node_id)
    else:
        snapshot = await store.synthesize_object_at(node_id, at)
    return jsonable(snapshot_to_dict(snapshot))


@router.get("/nodes/{node}/series", response_model=list[SeriesPointResponse])
async def get_series(
    node: str,
    field: str = Query(..., description="Dotted field path, e.g. .a"),
    at: datetime | None = Query(None, description="Latest instant to include (default: now)"),
    limit: int = Query(100, description="Maximum number of points"),
    store: TimeSeriesStore = Depends(get_store),
):
    """Most recent observations of one field, newest first."""
    points = await store.get_series(node_from_text(node), field, resolve_instant(at), limit)
    return [SeriesPointResponse(value=jsonable(p.value), timestamp=p.timestamp) for p in points]


@router.get("/nodes/{node}/exists", response_model=ExistsResponse)
async def node_exists(
    node: str,
    store: TimeSeriesStore = Depends(get_store),
):
    """Whether the node has any observations."""
    node_id = node_from_text(node)
    return ExistsResponse(node=node_id, exists=await store.exists(node_id))


@router.delete("/nodes/{node}", response_model=RemoveResponse)
async def remove_node(
    node: str,
    confirm: bool = Query(False, description="Must be true to delete"),
    store: TimeSeriesStore = Depends(get_store),
):
    """Delete every observation of the node."""
    node_id = node_from_text(node)
    removed = await store.remove(node_id, confirmed=confirm)
    return RemoveResponse(node=node_id, removed=removed)


@router.get("/search", response_model=list[SearchHitResponse])
async def search(
    field: str = Query(..., description="Dotted field path"),
    value: str = Query(..., description="JSON encoded value to match"),
    kind: str | None = Query(None, description="Set to 'date' to match an ISO 8601 instant"),
    at: datetime | None = Query(None, description="Latest instant to include (default: now)"),
    limit: int = Query(100, description="Maximum number of hits"),
    store: TimeSeriesStore = Depends(get_store),
):
    """Nodes whose field held the value at or before `at`."""
    try:
        target = json.loads(value)
        if kind == "date":
            target = datetime.fromisoformat(target)
    except (ValueError, TypeError) as e:
        raise InvalidArgumentError(f"Cannot parse search value {value!r}: {e}", argument="value") from e

    hits = await store.search(field, target, resolve_instant(at), limit)
    return [
        SearchHitResponse(node=h.node, value=jsonable(h.value), timestamp=h.timestamp) for h in hits
    ]


@router.get("/stats")
async def get_stats(store: TimeSeriesStore = Depends(get_store)):
    """Row counts per partition."""
    return await store.get_stats()


# --- App factory ---


async def handle_store_error(request: Request, exc: ObsDbError) -> JSONResponse:
    """Map store errors to JSON error responses."""
    status = next((s for t, s in ERROR_STATUS.items() if isinstance(exc, t)), 400)
    if status >= 500:
        logger.error(f"HTTP handler error: {exc.message}", exc_info=exc)
    return JSONResponse(
        status_code=status,
        content={"error": exc.message, "error_code": exc.code, "details": jsonable(exc.details)},
    )


def create_http_app(
    config: ServerConfig | None = None,
    store: TimeSeriesStore | None = None,
) -> FastAPI:
    """Create an HTTP application for ObsDB.

    Args:
        config: Server configuration (loaded from env if not provided)
        store: Optional ready store; when omitted the app opens and
            initializes one from ``config`` at startup and closes it at
            shutdown

    Returns:
        FastAPI application instance
    """
    config = config or ServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if store is not None:
            app.state.store = store
            yield
            return

        owned = TimeSeriesStore(create_backend(config.storage), config.store)
        await owned.initialize()
        app.state.store = owned
        try:
            yield
        finally:
            await owned.close()

    app = FastAPI(
        title="ObsDB",
        description="Object-valued time series store",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.http.cors_origins),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ObsDbError, handle_store_error)
    app.include_router(router, prefix="/v1")

    @app.get("/v1/health")
    async def health():
        return {"status": "healthy", "service": "obsdb", "version": __version__}

    return app

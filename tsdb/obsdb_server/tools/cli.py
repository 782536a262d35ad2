"""
Command-line tool for ObsDB administration.

This tool works directly against the configured database:
- init: Create missing partitions
- insert: Record a JSON object for a node
- snapshot: Print a node's current or past state
- series: Print recent values of one field
- search: Find nodes whose field held a value
- exists / remove: Check or delete a node
- stats: Print partition row counts

Usage:
    obsdb init
    obsdb insert --node 42 --json '{"a": 1, "sub": {"b": "x"}}'
    obsdb snapshot --node 42 --at 2024-05-01T12:00:00+00:00
    obsdb series --node 42 --field .a --limit 5
    obsdb search --field .sub.b --value '"x"'
    obsdb remove --node 42 --yes

Invariants:
    - Tools work offline (no running server required)
    - Output is JSON on stdout; errors go to stderr with exit code 1
    - --db and --prefix override TSDB_DB_PATH and TSDB_TABLE_PREFIX
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from ..backend import create_backend
from ..config import ServerConfig
from ..errors import ObsDbError
from ..store import TimeSeriesStore, snapshot_to_dict
from ..store.store import node_from_text

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _instant(text: str | None) -> datetime:
    if text is None:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(text)


class StoreCLI:
    """CLI commands over one store.

    Example:
        >>> cli = StoreCLI(store)
        >>> await cli.snapshot("42", None)
        '{"a": {"timestamp": "...", "value": 1.0}}'
    """

    def __init__(self, store: TimeSeriesStore) -> None:
        self.store = store

    async def init(self) -> dict[str, Any]:
        return {"partitions": self.store.router.tables()}

    async def insert(self, node: str, payload: str, at: str | None) -> dict[str, Any]:
        obj = json.loads(payload)
        written = await self.store.insert_object(node_from_text(node), obj, _instant(at))
        return {"node": node_from_text(node), "written": written}

    async def snapshot(self, node: str, at: str | None) -> dict[str, Any]:
        if at is None:
            result = await self.store.synthesize_object(node_from_text(node))
        else:
            result = await self.store.synthesize_object_at(node_from_text(node), _instant(at))
        return snapshot_to_dict(result)

    async def series(self, node: str, field: str, at: str | None, limit: int) -> list[dict[str, Any]]:
        points = await self.store.get_series(node_from_text(node), field, _instant(at), limit)
        return [{"value": p.value, "timestamp": p.timestamp} for p in points]

    async def search(
        self, field: str, value: str, is_date: bool, at: str | None, limit: int
    ) -> list[dict[str, Any]]:
        target = json.loads(value)
        if is_date:
            target = datetime.fromisoformat(target)
        hits = await self.store.search(field, target, _instant(at), limit)
        return [{"node": h.node, "value": h.value, "timestamp": h.timestamp} for h in hits]

    async def exists(self, node: str) -> dict[str, Any]:
        return {"node": node_from_text(node), "exists": await self.store.exists(node_from_text(node))}

    async def remove(self, node: str, confirmed: bool) -> dict[str, Any]:
        removed = await self.store.remove(node_from_text(node), confirmed=confirmed)
        return {"node": node_from_text(node), "removed": removed}

    async def stats(self) -> dict[str, int]:
        return await self.store.get_stats()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="obsdb", description="ObsDB time series store tool")
    parser.add_argument("--db", help="SQLite database path (default: TSDB_DB_PATH)")
    parser.add_argument("--prefix", help="Partition prefix (default: TSDB_TABLE_PREFIX)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create missing partitions")

    insert_parser = subparsers.add_parser("insert", help="Record a JSON object for a node")
    insert_parser.add_argument("--node", required=True, help="Node id (digits mean an integer id)")
    insert_parser.add_argument("--json", required=True, dest="payload", help="JSON object to record")
    insert_parser.add_argument("--at", help="ISO 8601 event time (default: now)")

    snapshot_parser = subparsers.add_parser("snapshot", help="Print a node's state")
    snapshot_parser.add_argument("--node", required=True)
    snapshot_parser.add_argument("--at", help="ISO 8601 instant (default: latest state)")

    series_parser = subparsers.add_parser("series", help="Print recent values of a field")
    series_parser.add_argument("--node", required=True)
    series_parser.add_argument("--field", required=True, help="Dotted field path, e.g. .a")
    series_parser.add_argument("--at", help="ISO 8601 instant (default: now)")
    series_parser.add_argument("--limit", type=int, default=10)

    search_parser = subparsers.add_parser("search", help="Find nodes by field value")
    search_parser.add_argument("--field", required=True)
    search_parser.add_argument("--value", required=True, help="JSON encoded value")
    search_parser.add_argument("--date", action="store_true", help="Value is an ISO 8601 instant")
    search_parser.add_argument("--at", help="ISO 8601 instant (default: now)")
    search_parser.add_argument("--limit", type=int, default=10)

    exists_parser = subparsers.add_parser("exists", help="Check whether a node has data")
    exists_parser.add_argument("--node", required=True)

    remove_parser = subparsers.add_parser("remove", help="Delete all data of a node")
    remove_parser.add_argument("--node", required=True)
    remove_parser.add_argument("--yes", action="store_true", help="Confirm deletion")

    subparsers.add_parser("stats", help="Print partition row counts")

    return parser


async def run(args: argparse.Namespace, config: ServerConfig) -> Any:
    """Open the store, run one command, close the store."""
    store = TimeSeriesStore(create_backend(config.storage), config.store)
    await store.initialize()
    cli = StoreCLI(store)
    try:
        if args.command == "init":
            return await cli.init()
        if args.command == "insert":
            return await cli.insert(args.node, args.payload, args.at)
        if args.command == "snapshot":
            return await cli.snapshot(args.node, args.at)
        if args.command == "series":
            return await cli.series(args.node, args.field, args.at, args.limit)
        if args.command == "search":
            return await cli.search(args.field, args.value, args.date, args.at, args.limit)
        if args.command == "exists":
            return await cli.exists(args.node)
        if args.command == "remove":
            return await cli.remove(args.node, args.yes)
        return await cli.stats()
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    if args.db:
        config.storage = replace(config.storage, db_path=args.db)
    if args.prefix:
        config.store = replace(config.store, table_prefix=args.prefix)

    try:
        result = asyncio.run(run(args, config))
    except ObsDbError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1
    except ValueError as e:
        # Malformed JSON or ISO 8601 arguments
        print(f"INVALID_ARGUMENT: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, sort_keys=True, default=_json_default))
    return 0


if __name__ == "__main__":
    sys.exit(main())
